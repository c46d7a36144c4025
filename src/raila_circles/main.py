"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from raila_circles import __version__
from raila_circles.api.health import router as health_router
from raila_circles.api.lending_paths import router as lending_paths_router
from raila_circles.blockchain_connector.provider import BlockchainProvider
from raila_circles.config.settings import Settings, settings
from raila_circles.data_collector.circles_client import CirclesRpcClient
from raila_circles.loans.loan_relations import LoanRelationReader
from raila_circles.pathfinding.path_finder import LendingPathFinder, PathFinderConfig
from raila_circles.pathfinding.sources import ProfileSource
from raila_circles.protocols.chain_state_reader import RailaChainStateReader

logger = logging.getLogger(__name__)


@dataclass
class RailaServices:
    """Long-lived collaborators shared by request handlers."""
    path_finder: LendingPathFinder
    profile_source: ProfileSource
    loan_reader: Optional[LoanRelationReader] = None
    blockchain_provider: Optional[BlockchainProvider] = None
    circles_client: Optional[CirclesRpcClient] = None
    max_depth: int = 3
    profile_lookup_concurrency: int = 8

    async def close(self) -> None:
        if self.circles_client is not None:
            await self.circles_client.close()
        if self.blockchain_provider is not None:
            await self.blockchain_provider.close()


async def build_services(config: Settings = None) -> RailaServices:
    """Connect to the chain and the Circles RPC and wire the search components."""
    config = config or settings

    blockchain_provider = BlockchainProvider(config)
    await blockchain_provider.initialize()

    circles_client = CirclesRpcClient(config.circles_rpc_url, timeout_seconds=config.rpc_timeout_seconds)
    await circles_client.initialize()

    chain_reader = RailaChainStateReader(
        multicall=await blockchain_provider.get_multicall_provider(),
        module_address=config.raila_module_address,
        token_address=config.liquidity_token_address
    )

    return RailaServices(
        path_finder=LendingPathFinder(
            trust_source=circles_client,
            chain_reader=chain_reader,
            config=PathFinderConfig(max_depth=config.max_path_depth)
        ),
        profile_source=circles_client,
        loan_reader=LoanRelationReader(circles_client, chain_reader),
        blockchain_provider=blockchain_provider,
        circles_client=circles_client,
        max_depth=config.max_path_depth,
        profile_lookup_concurrency=config.profile_lookup_concurrency
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan - startup and shutdown events."""
    logger.info("Starting Raila Circles service")

    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = await build_services()

    logger.info("Service startup complete")

    yield

    logger.info("Shutting down Raila Circles service")
    if owns_services:
        await app.state.services.close()
        app.state.services = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Raila Circles API",
        description="Lending path discovery through the Circles trust graph",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(health_router, tags=["health"])
    app.include_router(lending_paths_router, tags=["lending"])

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    uvicorn.run(
        "raila_circles.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug",
    )
