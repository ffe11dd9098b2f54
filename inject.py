#!/usr/bin/env python3
"""
Java agent injector entry point.
"""

from agent_injector.main import main

if __name__ == '__main__':
    main()
