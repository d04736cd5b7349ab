#!/usr/bin/env python3
"""Live check of mDNS controller location.

Browses the LAN and, when INTELLICENTER_HOST is set in .env, checks that
the expected controller was among the ones found.
"""

import asyncio
import os
import sys

from dotenv import load_dotenv

load_dotenv()

from pyintellibridge.locate import locate_controllers  # noqa: E402


async def main() -> bool:
    expected = os.getenv("INTELLICENTER_HOST")
    timeout = float(os.getenv("LOCATE_TIMEOUT", "10"))

    print(f"Browsing for IntelliCenter controllers ({timeout:.0f}s)...")
    controllers = await locate_controllers(timeout)
    if not controllers:
        print("No controller found. Check that mDNS is not blocked on this network.")
        return False

    for controller in controllers:
        model = f" [{controller.model}]" if controller.model else ""
        print(f"  {controller.name} at {controller.host}:{controller.port}{model}")

    if expected and expected not in {c.host for c in controllers}:
        print(f"Expected controller {expected} was not found")
        return False
    return True


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(main()) else 1)
