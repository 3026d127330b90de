"""
Entry point for running the searcher.
Usage: python -m flashbots_arb_bot
"""

import asyncio
import sys

from .bot import load_market_source, run_bot
from .config import load_config_from_env


def main() -> int:
    """Main entry point."""
    try:
        config = load_config_from_env()

        errors = config.validate()
        if errors:
            print("Configuration errors:", file=sys.stderr)
            for error in errors:
                print(f"  - {error}", file=sys.stderr)
            return 1

        market_source = load_market_source(config.market_source, config)

        asyncio.run(run_bot(config, market_source))
        return 0

    except KeyboardInterrupt:
        print("\nShutdown requested")
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
