#!/usr/bin/env python3
"""
Main entry point for the token keeper daemon
"""

from tokenkeeper.main import run

if __name__ == "__main__":
    run()
