"""Allow running as ``python -m moralis_mcp_server``."""

from .cli import main

if __name__ == "__main__":
    main()
