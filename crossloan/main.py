#!/usr/bin/env python3
"""
Cross-chain loan coordinator
Entry point for ``python -m crossloan.main``
"""
from .cli import main


if __name__ == "__main__":
    main()
