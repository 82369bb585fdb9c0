#!/usr/bin/env python3
"""
IXWALLET - Terminal Dashboard

Rich-based live terminal view showing:
- Refresh status and reference-currency total
- Every wallet with its native balance
- Token balances per wallet
- Recently sent transactions

Runs in a background thread alongside the async refresh loop.
"""

import threading
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from rich.align import Align
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ixwallet.core.models import WalletRecord

if TYPE_CHECKING:
    from ixwallet.app import WalletApp
    from ixwallet.sync.cache import BalanceCache


def format_amount(value: Optional[int], decimals: int, places: int = 4) -> str:
    """Base units -> display string, '-' when unknown."""
    if value is None:
        return "-"
    shown = Decimal(value).scaleb(-decimals).quantize(Decimal(1).scaleb(-places))
    return f"{shown:,}"


def build_wallet_table(wallets: list[WalletRecord], cache: "BalanceCache") -> Table:
    """One row per wallet; shared by the dashboard and `python -m ixwallet list`."""
    table = Table(
        expand=True,
        show_header=True,
        header_style="bold bright_cyan",
        border_style="dim",
    )
    table.add_column("Name", style="white", min_width=10)
    table.add_column("Chain", min_width=4)
    table.add_column("Address", min_width=14)
    table.add_column("Balance", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Created", justify="right")

    for wallet in wallets:
        balance = cache.get_native(wallet.address)
        pending = cache.is_in_flight(wallet.address)
        table.add_row(
            wallet.alias,
            wallet.chain.symbol.upper(),
            f"{wallet.address[:8]}...{wallet.address[-4:]}",
            Text(
                f"{format_amount(balance, wallet.decimals)}{' *' if pending else ''}",
                style="bold green" if balance else "dim",
            ),
            str(len(wallet.tokens)),
            wallet.created_at.strftime("%Y-%m-%d"),
        )
    return table


class Dashboard:
    """
    Terminal dashboard that runs alongside the balance refresh loop.

    Reads cache and store state from a background thread and renders
    a Rich Live display.
    """

    REFRESH_INTERVAL = 2.5  # seconds

    def __init__(self, app: "WalletApp"):
        self.app = app
        self.console = Console()
        self.start_time = datetime.now()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Launch the dashboard in a background daemon thread."""
        self._thread = threading.Thread(
            target=self._run_loop,
            name="ixwallet-dashboard",
            daemon=True,
        )
        self._thread.start()

    def stop(self):
        """Signal the dashboard thread to stop."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    def _run_loop(self):
        """Main loop: Rich Live display until stop is signaled."""
        with Live(
            self._build_layout(),
            console=self.console,
            refresh_per_second=0,
            screen=True,
        ) as live:
            while not self._stop_event.is_set():
                try:
                    live.update(self._build_layout())
                except Exception:
                    pass  # never crash the dashboard thread
                self._stop_event.wait(timeout=self.REFRESH_INTERVAL)

    # ── Layout ────────────────────────────────────────────

    def _build_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="wallets", ratio=2),
            Layout(name="tokens", ratio=2),
            Layout(name="history", ratio=1),
        )

        layout["header"].update(self._build_header_panel())
        layout["wallets"].update(self._build_wallets_panel())
        layout["tokens"].update(self._build_tokens_panel())
        layout["history"].update(self._build_history_panel())

        return layout

    # ── Panels ────────────────────────────────────────────

    def _build_header_panel(self) -> Panel:
        """Top bar: refresh state, total, uptime."""
        uptime = str(datetime.now() - self.start_time).split(".")[0]
        cache = self.app.cache

        if cache.is_refresh_complete:
            status, color = "UP TO DATE", "green"
        else:
            status, color = f"REFRESHING ({len(cache.in_flight())})", "yellow"

        total = self.app.engine.get_total_balance()
        currency = self.app.config.currency.upper()

        header = Text()
        header.append(f"  Status: {status}", style=f"bold {color}")
        header.append("  |  ")
        header.append(f"Total: {total:,} {currency}", style="bold cyan")
        header.append("  |  ")
        header.append(f"Uptime: {uptime}", style="bold white")

        return Panel(
            Align.center(header),
            title="[bold bright_white]IXWALLET[/]",
            border_style="bright_blue",
        )

    def _build_wallets_panel(self) -> Panel:
        wallets = self.app.manager.wallets
        if not wallets:
            return Panel(
                Align.center(Text("No wallets yet", style="dim italic")),
                title="Wallets",
                border_style="cyan",
            )
        return Panel(build_wallet_table(wallets, self.app.cache), title="Wallets", border_style="cyan")

    def _build_tokens_panel(self) -> Panel:
        rows = [(w, t) for w in self.app.manager.wallets for t in w.tokens]
        if not rows:
            return Panel(
                Align.center(Text("No tokens added", style="dim italic")),
                title="Tokens",
                border_style="magenta",
            )

        table = Table(
            expand=True,
            show_header=True,
            header_style="bold bright_magenta",
            border_style="dim",
        )
        table.add_column("Wallet", min_width=10)
        table.add_column("Token", min_width=6)
        table.add_column("Contract", min_width=14)
        table.add_column("Balance", justify="right")

        for wallet, token in rows:
            balance = self.app.cache.get_token(wallet.address, token.contract_address)
            table.add_row(
                wallet.alias,
                token.symbol,
                f"{token.contract_address[:8]}...{token.contract_address[-4:]}",
                format_amount(balance, token.decimal),
            )

        return Panel(table, title="Tokens", border_style="magenta")

    def _build_history_panel(self) -> Panel:
        try:
            recent = self.app.store.list_transactions()[:10]
        except Exception:
            recent = []

        if not recent:
            return Panel(
                Align.center(Text("No transfers sent yet", style="dim italic")),
                title="Recent Transfers",
                border_style="yellow",
            )

        table = Table(
            expand=True,
            show_header=True,
            header_style="bold bright_yellow",
            border_style="dim",
        )
        table.add_column("Time", min_width=8)
        table.add_column("Asset", min_width=4)
        table.add_column("To", min_width=14)
        table.add_column("Tx", min_width=14)
        table.add_column("Done", justify="right")

        for tx in recent:
            table.add_row(
                tx.date.strftime("%m-%d %H:%M"),
                (tx.token_symbol or tx.chain.symbol).upper(),
                f"{tx.to_address[:8]}...{tx.to_address[-4:]}",
                f"{tx.tx_hash[:10]}...",
                Text("yes", style="green") if tx.completed else Text("no", style="dim"),
            )

        return Panel(table, title="Recent Transfers", border_style="yellow")
