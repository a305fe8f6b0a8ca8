from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from duckview.api.api_app import router
from duckview.config.defaults import default, logger
from duckview.engine.provisioner import EngineProvisioner
from duckview.routing import parse_episode_indices
from duckview.session import DatasetSessionManager


def create_app(provisioner: EngineProvisioner | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.provisioner = provisioner or EngineProvisioner()
        app.state.manager = DatasetSessionManager(app.state.provisioner)
        app.state.sessions = {}
        app.state.episode_indices = parse_episode_indices(default.EPISODES)
        yield
        for session in list(app.state.sessions.values()):
            await session.close()
        app.state.sessions.clear()
        app.state.provisioner.close()
        logger.info("[duckview.api] shut down")

    app = FastAPI(title="DuckView", version="0.1.0", lifespan=lifespan)
    app.include_router(router)
    return app


# single FastAPI app lives here only
app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=default.HOST, port=default.PORT)


if __name__ == "__main__":
    main()
