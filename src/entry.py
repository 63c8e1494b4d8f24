#!/usr/bin/env python3
"""Entry point for pae when packaged as zipapp."""

import sys

from pae.application import main

if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
