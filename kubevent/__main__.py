"""Entry point for `python -m kubevent`.

Usage:
    python -m kubevent
"""

from __future__ import annotations

import asyncio

from kubevent.app import main

asyncio.run(main())
