"""Entry point for the two-way SMS simulator server."""

import asyncio

from dotenv import load_dotenv

from .classifier import ResponseClassifier
from .config.settings import Settings
from .server import SmsDemoServer


def main() -> None:
    """Start the simulator server."""
    # Load environment variables
    load_dotenv()

    settings = Settings()
    classifier = ResponseClassifier(settings.classifier)
    server = SmsDemoServer(settings=settings, classifier=classifier)

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nServer shutdown.")


if __name__ == "__main__":
    main()
