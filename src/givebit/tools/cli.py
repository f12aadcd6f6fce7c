#!/usr/bin/env python3
"""GiveBit CLI — create, inspect and watch donation sessions.

Credentials and environment come from ``GIVEBIT_*`` environment variables
(or a YAML file named by ``GIVEBIT_CONFIG_PATH``):

    # Create a donation session paying out to a creator wallet
    givebit create <creator_wallet> <amount> [currency] [network]

    # Show the current state of a session
    givebit status <session_id>

    # List recent sessions
    givebit history [limit]

    # Stream events for a session until it reaches a terminal status
    givebit watch <session_id>
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from givebit.config.settings import GiveBitConfig
    from givebit.models.session import DonationSession
    from givebit.notifications.events import DonationEvent


def _load_config() -> GiveBitConfig:
    from givebit.config.settings import GiveBitConfig

    path = os.getenv("GIVEBIT_CONFIG_PATH", "")
    return GiveBitConfig.from_yaml(path) if path else GiveBitConfig()


def _print_session(session: DonationSession) -> None:
    print(f"Session:   {session.id}")
    print(f"Status:    {session.status}")
    print(f"Amount:    {session.amount}")
    print(f"Creator:   {session.creator_wallet}")
    if session.donor_wallet:
        print(f"Donor:     {session.donor_wallet}")
    print(f"Chain:     {session.chain_id}  contract={session.contract_address}")
    if session.tx_hash:
        print(f"Tx hash:   {session.tx_hash}")
    print(f"Created:   {session.created_at}")


def _cmd_create(creator_wallet: str, amount: str, currency: str, network: str) -> None:
    """Create a donation session and print it."""
    from givebit.rest.client import RestClient

    async def _run() -> None:
        rest = RestClient.from_config(_load_config())
        await rest.connect()
        try:
            session = await rest.create_donation_session(
                creator_wallet=creator_wallet,
                amount=amount,
                currency=currency,
                network=network,
            )
            _print_session(session)
        finally:
            await rest.close()

    asyncio.run(_run())


def _cmd_status(session_id: str) -> None:
    """Print the current state of a donation session."""
    from givebit.rest.client import RestClient

    async def _run() -> None:
        rest = RestClient.from_config(_load_config())
        await rest.connect()
        try:
            _print_session(await rest.get_donation_session(session_id))
        finally:
            await rest.close()

    asyncio.run(_run())


def _cmd_history(limit: int | None) -> None:
    """List recent donation sessions."""
    from givebit.rest.client import RestClient

    async def _run() -> None:
        rest = RestClient.from_config(_load_config())
        await rest.connect()
        try:
            sessions = await rest.get_donation_history(limit)
            if not sessions:
                print("No donation sessions found")
                return
            print("-" * 80)
            for s in sessions:
                print(f"  {s.id}  {s.status:<10} {s.amount:>14}  {s.created_at}")
            print("-" * 80)
            print(f"  [{len(sessions)} sessions]")
        finally:
            await rest.close()

    asyncio.run(_run())


def _cmd_watch(session_id: str) -> None:
    """Stream channel and polling events for a session until it ends."""
    from givebit.client import GiveBit
    from givebit.notifications.events import EventType
    from givebit.notifications.registry import deduplicate

    async def _run() -> None:
        done = asyncio.Event()

        def _on_event(event: DonationEvent) -> None:
            if event.session is not None and event.session.id not in ("", session_id):
                return
            status = event.session.status if event.session else "-"
            print(f"[{event.timestamp}] {event.type:<20} {status:<10} via {event.source}")
            if event.session is not None and event.session.is_terminal:
                done.set()

        listener = deduplicate(_on_event)
        async with GiveBit(_load_config()) as gb:
            for kind in EventType:
                gb.on(kind, listener)
            gb.track_session(session_id)
            print(f"Watching {session_id} (channel connected: {gb.is_connected()})")
            await done.wait()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        print("Interrupted")


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=os.getenv("GIVEBIT_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1].lower()

    if cmd == "create":
        if len(sys.argv) < 4:
            print("Usage: givebit create <creator_wallet> <amount> [currency] [network]")
            sys.exit(1)
        currency = sys.argv[4] if len(sys.argv) > 4 else "ETH"
        network = sys.argv[5] if len(sys.argv) > 5 else "holesky"
        _cmd_create(sys.argv[2], sys.argv[3], currency, network)
    elif cmd == "status":
        if len(sys.argv) < 3:
            print("Usage: givebit status <session_id>")
            sys.exit(1)
        _cmd_status(sys.argv[2])
    elif cmd == "history":
        limit = int(sys.argv[2]) if len(sys.argv) > 2 else None
        _cmd_history(limit)
    elif cmd == "watch":
        if len(sys.argv) < 3:
            print("Usage: givebit watch <session_id>")
            sys.exit(1)
        _cmd_watch(sys.argv[2])
    else:
        print(f"Unknown command: {cmd}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
