#!/usr/bin/env python3
"""
VM Fleet Reconciler

- Install monitoring agents on VMs
- Start / stop (deallocate) VMs
- Export network resource templates
- Scan application credential expirations

This script supports running directly from a source checkout. It adds the
local `src/` directory to sys.path before importing the CLI. For production
use, prefer installing the project and using the `fleet-reconcile` console
script.
"""

import os
import sys

# Add src/ to path to import modules directly
REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
SRC_PATH = os.path.join(REPO_ROOT, "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from cli import main

if __name__ == "__main__":
    sys.exit(main())
