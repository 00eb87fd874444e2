import sys

from polymarket_trade_assistant.cli import main

if __name__ == "__main__":
    sys.exit(main())
