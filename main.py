"""
Main entry point for the GMP Operator.
"""
import kopf
from loguru import logger
from dotenv import load_dotenv

from gmp_operator.handlers import register_handlers
from gmp_operator.handlers.startup import configure_operator, start_controllers, stop_controllers
from gmp_operator.handlers.watches import get_config

# Load environment variables
load_dotenv()

# Initialize configuration
config = get_config()

# Configure logging
logger.add("operator.log", rotation="1 day", retention="7 days", level=config.log_level)
logger.info("Starting GMP Operator")

# Register startup handler
@kopf.on.startup()
async def startup(settings: kopf.OperatorSettings, **kwargs):
    """Configure the operator and start the controllers."""
    configure_operator(settings, app_config=config, **kwargs)
    await start_controllers()


@kopf.on.cleanup()
async def cleanup(**kwargs):
    """Stop the controllers on shutdown."""
    await stop_controllers()

# Register all handlers
register_handlers()


if __name__ == "__main__":
    # Run the operator
    logger.info("Running GMP Operator")
    kopf.run(clusterwide=True)
