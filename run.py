#!/usr/bin/env python3
"""
Loan Servicing Entry Point

Starts the FastAPI server with the loan servicing back office.
"""

import sys

from loan_servicing.api import run_server
from loan_servicing.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Loan Servicing Back Office...")
    print(f"Storage: {config.storage_backend} ({config.database_path})")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=config.api_debug
        )
    except KeyboardInterrupt:
        print("\nShutting down Loan Servicing Back Office...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
