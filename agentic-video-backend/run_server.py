import uvicorn

from config import settings


def server_options(agent_settings=settings) -> dict:
    return {
        "host": agent_settings.host,
        "port": agent_settings.port,
        "reload": True,
        # Exclude job scratch files and media from the reload watcher
        "reload_excludes": ["media/*", "media/jobs/*"],
    }


if __name__ == "__main__":
    uvicorn.run("main:app", **server_options())
