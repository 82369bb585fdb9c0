#!/usr/bin/env python3
"""
IXWALLET App - The Composition Root

Builds every component once, wires them together, and exposes the
command line.
"""

import asyncio
import getpass
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from rich.console import Console

from ixwallet.config import ChainType, WalletConfig
from ixwallet.core.client import EthereumClient, IconClient
from ixwallet.core.keys import KeyMaterial
from ixwallet.data.database import WalletStore
from ixwallet.data.price_feed import ExchangeRateFeed
from ixwallet.exceptions import ConfigError, IXWalletError, WalletNotFound, WrongPasswordError
from ixwallet.lifecycle.address_book import AddressBook, TransactionHistory
from ixwallet.lifecycle.manager import ExportItem, WalletLifecycleManager
from ixwallet.logger import WalletLogger
from ixwallet.sync.cache import BalanceCache
from ixwallet.sync.engine import BalanceSyncEngine
from ixwallet.transfer.builder import TransactionBuilder
from ixwallet.ui.dashboard import Dashboard, build_wallet_table


class WalletApp:
    """Owns one instance of every service and their start/stop order."""

    def __init__(self, config: WalletConfig):
        self.config = config
        self.logger = WalletLogger(config)

        errors = config.validate()
        if errors:
            for error in errors:
                self.logger.error("Configuration error", Exception(error))
            raise ConfigError("Invalid configuration")

        self.store = WalletStore(config.db_path)
        self.keys = KeyMaterial(config)

        self.cache = BalanceCache(config.in_flight_timeout_seconds)
        self.cache.init()

        self.icon_client = IconClient(config, self.logger)
        self.eth_client = EthereumClient(config, self.logger)
        self.rates = ExchangeRateFeed(config)

        self.manager = WalletLifecycleManager(
            config, self.store, self.keys, self.cache, self.logger
        )
        self.address_book = AddressBook(self.store, self.logger)
        self.history = TransactionHistory(self.store)

        self.engine = BalanceSyncEngine(
            config,
            self.cache,
            self.icon_client,
            self.eth_client,
            self.rates,
            self.logger,
            wallet_source=lambda: self.manager.wallets,
        )
        self.builder = TransactionBuilder(
            config,
            self.icon_client,
            self.eth_client,
            self.keys,
            self.history,
            self.cache,
            self.logger,
        )

        self.running = False

    def rate_symbols(self) -> list[str]:
        symbols = {chain.symbol for chain in ChainType}
        for wallet in self.manager.wallets:
            symbols.update(token.symbol.lower() for token in wallet.tokens)
        return sorted(symbols)

    async def refresh(self):
        """One rates fetch plus one balance cycle, events delivered."""
        await self.rates.fetch_rates(self.rate_symbols())
        await self.engine.refresh_all()
        await self.engine.flush_events()

    async def start(self):
        """Open sessions and start the periodic refresh."""
        self.running = True
        await self.icon_client.initialize()
        await self.eth_client.initialize()
        await self.rates.initialize()
        await self.rates.fetch_rates(self.rate_symbols())
        await self.engine.start()

    async def stop(self):
        """Graceful shutdown."""
        self.running = False
        await self.engine.stop()
        await self.icon_client.close()
        await self.eth_client.close()
        await self.rates.close()
        self.cache.shutdown()
        self.store.close()


# ═══════════════════════════════════════════════════════════════════════
#                               COMMAND LINE
# ═══════════════════════════════════════════════════════════════════════

def to_base_units(amount: str, decimals: int) -> int:
    """'1.5' with 18 decimals -> 1500000000000000000."""
    try:
        value = Decimal(amount)
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {amount}") from e
    units = value.scaleb(decimals)
    if units != units.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(units)


def ask_new_password() -> str:
    password = getpass.getpass("New password: ")
    if password != getpass.getpass("Confirm password: "):
        raise ValueError("Passwords do not match")
    return password


def require_wallet(app: WalletApp, key: str):
    record = app.manager.load_wallet(key)
    if record is None:
        raise WalletNotFound(f"No wallet named or at {key}")
    return record


async def run_command(app: WalletApp, args, console: Console):
    manager = app.manager

    if args.command == "list":
        console.print(build_wallet_table(manager.wallets, app.cache))

    elif args.command == "create":
        password = ask_new_password()
        record = await asyncio.to_thread(
            manager.create_wallet, ChainType(args.chain), args.name, password
        )
        console.print(f"Created {record.alias}: {record.address}")

    elif args.command == "import-key":
        private_key = getpass.getpass("Private key (hex): ")
        password = ask_new_password()
        record = await asyncio.to_thread(
            manager.import_from_private_key, ChainType(args.chain), args.name, private_key, password
        )
        console.print(f"Imported {record.alias}: {record.address}")

    elif args.command == "import-keystore":
        data = Path(args.file).read_bytes()
        password = getpass.getpass("Keystore password: ")
        record = await asyncio.to_thread(manager.import_keystore_file, data, args.name, password)
        console.print(f"Imported {record.alias}: {record.address}")

    elif args.command == "import-bundle":
        entries = manager.import_from_bundle_file(Path(args.file).read_bytes())
        password = getpass.getpass("Bundle password: ")
        verified = []
        for entry in entries:
            try:
                await asyncio.to_thread(manager.validate_bundle_entry_password, entry, password)
                verified.append(entry)
            except WrongPasswordError:
                console.print(f"[yellow]Wrong password for {entry.name}; skipped[/]")
        result = manager.commit_bundle(verified)
        console.print(f"Admitted {len(result.admitted)}, skipped {len(result.skipped)}")

    elif args.command == "export":
        names = args.names or [w.alias for w in manager.wallets]
        items = []
        for name in names:
            record = require_wallet(app, name)
            password = getpass.getpass(f"Password for {record.alias}: ")
            private_key = await asyncio.to_thread(manager.unlock, record, password)
            items.append(ExportItem(record=record, private_key=private_key))
        console.print("Choose a password for the backup bundle.")
        path = await manager.export_bundle(items, ask_new_password(), args.dir)
        console.print(f"Bundle written to {path}")

    elif args.command == "rename":
        manager.rename_wallet(args.old, args.new)
        console.print(f"Renamed {args.old} -> {args.new}")

    elif args.command == "passwd":
        record = require_wallet(app, args.name)
        old = getpass.getpass("Current password: ")
        new = ask_new_password()
        await asyncio.to_thread(manager.change_password, record, old, new)
        console.print("Password changed")

    elif args.command == "delete":
        record = require_wallet(app, args.name)
        if manager.delete_wallet(record):
            console.print(f"Deleted {record.alias}")
        else:
            console.print(f"[red]Could not delete {record.alias}[/]")

    elif args.command == "refresh":
        await app.refresh()
        console.print(build_wallet_table(manager.wallets, app.cache))

    elif args.command == "total":
        await app.refresh()
        total = app.engine.get_total_balance()
        console.print(f"Total: {total:,} {app.config.currency.upper()}")

    elif args.command == "send":
        record = require_wallet(app, args.name)
        password = getpass.getpass(f"Password for {record.alias}: ")
        private_key = await asyncio.to_thread(manager.unlock, record, password)

        if args.token:
            token = next(
                (t for t in record.tokens if t.contract_address == args.token.lower()), None
            )
            if token is None:
                raise WalletNotFound(f"{record.alias} holds no token at {args.token}")
            tx_hash = await app.builder.send_token(
                record.chain,
                private_key,
                record.address,
                token.contract_address,
                args.to,
                to_base_units(args.amount, token.decimal),
                args.fee_limit,
                token_symbol=token.symbol,
            )
        else:
            tx_hash = await app.builder.send_native(
                record.chain,
                private_key,
                record.address,
                args.to,
                to_base_units(args.amount, record.decimals),
                args.fee_limit,
                memo=args.memo,
            )
        console.print(f"Submitted: {tx_hash}")

    elif args.command == "watch":
        # Keep console log lines from corrupting the Rich display
        wallet_logger = logging.getLogger("IXWALLET")
        for handler in wallet_logger.handlers[:]:
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                wallet_logger.removeHandler(handler)

        dashboard = Dashboard(app)
        dashboard.start()
        try:
            await app.start()
            while app.running:
                await asyncio.sleep(1)
        finally:
            dashboard.stop()


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="ixwallet",
        description="IXWALLET - ICX and ETH wallet manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m ixwallet create --chain icx --name main
  python -m ixwallet import-bundle ~/ICONex/ICONex_2024-01-01T00-00-00.000Z
  python -m ixwallet send main hx0123...abcd 1.5 --memo "rent"
  python -m ixwallet watch

Environment Variables (or use .env file):
  ICX_RPC_URL / ICX_NID      - ICON endpoint and network id
  ETH_RPC_URL / ETH_CHAIN_ID - Ethereum endpoint and chain id
  IXWALLET_DB_PATH           - SQLite file (default: ixwallet.db)
  IXWALLET_BACKUP_DIR        - Bundle export directory (default: ICONex)
  IXWALLET_CURRENCY          - Reference currency (default: usd)
        """,
    )
    parser.add_argument(
        "--network",
        choices=["main", "dev", "yeouido"],
        default="main",
        help="ICON network (default: main)",
    )
    parser.add_argument("--db", type=str, help="Path to the wallet database")

    sub = parser.add_subparsers(dest="command", required=True)
    chains = [c.value for c in ChainType]

    sub.add_parser("list", help="Show stored wallets")

    p = sub.add_parser("create", help="Create a new wallet")
    p.add_argument("--chain", choices=chains, required=True)
    p.add_argument("--name", required=True)

    p = sub.add_parser("import-key", help="Import a raw private key")
    p.add_argument("--chain", choices=chains, required=True)
    p.add_argument("--name", required=True)

    p = sub.add_parser("import-keystore", help="Import a keystore file")
    p.add_argument("file")
    p.add_argument("--name", required=True)

    p = sub.add_parser("import-bundle", help="Import a backup bundle")
    p.add_argument("file")

    p = sub.add_parser("export", help="Export wallets to a backup bundle")
    p.add_argument("names", nargs="*", help="Wallet names (default: all)")
    p.add_argument("--dir", type=str, help="Backup directory")

    p = sub.add_parser("rename", help="Rename a wallet")
    p.add_argument("old")
    p.add_argument("new")

    p = sub.add_parser("passwd", help="Change a wallet password")
    p.add_argument("name")

    p = sub.add_parser("delete", help="Delete a wallet")
    p.add_argument("name")

    sub.add_parser("refresh", help="Fetch balances once")
    sub.add_parser("total", help="Print the total balance")

    p = sub.add_parser("send", help="Send coins or tokens")
    p.add_argument("name", help="Sending wallet")
    p.add_argument("to", help="Recipient address")
    p.add_argument("amount", help="Amount in whole units, e.g. 1.5")
    p.add_argument("--token", type=str, help="Token contract address")
    p.add_argument("--fee-limit", type=int, help="Step limit (ICX) or gas limit (ETH)")
    p.add_argument("--memo", type=str, help="Message attached to a coin transfer")

    sub.add_parser("watch", help="Live balance dashboard")

    return parser


async def main(argv: list[str] | None = None) -> int:
    """
    The entry point.
    """
    args = build_parser().parse_args(argv)

    config = WalletConfig(icon_network=args.network)
    if args.db:
        config.db_path = args.db

    console = Console()
    try:
        app = WalletApp(config)
    except ConfigError as e:
        console.print(f"[red]{e}[/]")
        return 2

    try:
        await run_command(app, args, console)
        return 0
    except (IXWalletError, ValueError, OSError) as e:
        console.print(f"[red]{type(e).__name__}: {e}[/]")
        return 1
    except KeyboardInterrupt:
        return 130
    finally:
        await app.stop()


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
