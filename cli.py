# cli.py
import asyncio
import logging
import sys
from datetime import date
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle

from pickup.config import get_settings
from pickup.errors import PickupError
from pickup.models import RECOMMENDED, CategoryRef, ProductState, ProductView, Reservation
from pickup.storefront import Storefront
from pickup_sdk.client import PickupClient

console = Console()
session: PromptSession = PromptSession()

status_message = "Ready"

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})

STATE_STYLE = {
    ProductState.OPEN: "green",
    ProductState.PENDING_OPEN: "yellow",
    ProductState.SOLD_OUT: "red",
}


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


# ---------------------------
# Display helpers
# ---------------------------
def show_products(views: List[ProductView], active_date: date):
    if not views:
        console.print(f"[italic yellow]No products for {active_date}[/italic yellow]")
        return

    table = Table(
        title=f"📦 Pickup {active_date:%Y-%m-%d (%a)}",
        box=box.ROUNDED,
        header_style="bold cyan",
        title_style="bold magenta",
        show_lines=True,
    )
    table.add_column("ID", style="dim", width=6)
    table.add_column("Name", style="bold", width=24)
    table.add_column("Price", justify="right", width=10)
    table.add_column("Stock", justify="right", width=7)
    table.add_column("State", width=16)
    table.add_column("Qty", justify="right", width=5)

    for v in views:
        p = v.product
        style = STATE_STYLE[v.state]
        state = v.state.value
        if v.countdown_label:
            state = f"opens in {v.countdown_label}"
        table.add_row(
            str(p.id),
            ("⭐ " if p.recommended else "") + p.name,
            f"{p.price:,}",
            str(p.stock),
            f"[{style}]{state}[/{style}]",
            str(v.draft_quantity),
        )
    console.print(table)


def show_reservations(reservations: List[Reservation]):
    if not reservations:
        console.print("[italic yellow]No reservations[/italic yellow]")
        return

    table = Table(title="📋 My reservations", box=box.ROUNDED, header_style="bold yellow", show_lines=True)
    table.add_column("ID", style="dim", width=8)
    table.add_column("Product", width=24)
    table.add_column("Qty", justify="right", width=5)
    table.add_column("Pickup", width=12)
    table.add_column("Amount", justify="right", width=10)
    table.add_column("Fulfillment", width=12)
    table.add_column("Status", width=10)

    for r in reservations:
        status_style = "green" if r.status.value == "picked_up" else "yellow"
        table.add_row(
            str(r.id),
            r.product_name or f"#{r.product_id}",
            str(r.quantity),
            r.pickup_date.isoformat(),
            f"{r.amount:,}",
            r.fulfillment.value,
            f"[{status_style}]{r.status.value}[/{status_style}]",
        )
    console.print(table)


def show_categories(choices: List[CategoryRef]):
    table = Table(title="🏷️ Categories", box=box.ROUNDED, header_style="bold blue")
    table.add_column("#", style="dim", width=4)
    table.add_column("ID", width=6)
    table.add_column("Name", width=14)
    table.add_column("Products", justify="right", width=9)
    for i, c in enumerate(choices):
        if c.kind == "recommended":
            table.add_row("-", "-", f"[magenta]{c.name}[/magenta]", "")
        else:
            table.add_row(str(i - 1), str(c.id), c.name, str(len(c.product_ids)))
    console.print(table)


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


def create_header(shop: Storefront):
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)

    now = shop.windows.now().astimezone(shop.windows.tz).strftime("%Y-%m-%d %H:%M")
    clock = "[red]clock not synced[/red]" if shop.is_clock_stale else f"[dim]{now}[/dim]"
    header.add_row("🧺 " + shop.settings.APP_NAME, "[bold blue]Reserve today, pick up in store[/bold blue]", clock)
    return Panel(header, style="bold blue")


# ---------------------------
# API wrapper with error handling
# ---------------------------
async def try_api(coro, success_msg: Optional[str] = None):
    """Await a storefront call under a spinner; PickupError becomes a status line."""
    global status_message
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(description="Processing...", total=None)
            result = await coro

        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except PickupError as e:
        status_message = f"Error: {e.message}"
        console.print(show_status(e.message, False))
        return None


# ---------------------------
# Input helpers
# ---------------------------
async def ask(message: str, completer=None, default: str = "") -> str:
    text = await session.prompt_async(f"{message} ", completer=completer, style=custom_style, default=default)
    return text.strip()


async def ask_int(message: str, default: Optional[int] = None) -> Optional[int]:
    raw = await ask(message, default="" if default is None else str(default))
    try:
        return int(raw)
    except ValueError:
        console.print("[red]Please enter a number.[/red]")
        return None


def product_completer(shop: Storefront) -> WordCompleter:
    return WordCompleter([str(p.id) for p in shop.store.products], ignore_case=True)


async def pick_category(shop: Storefront, allow_all: bool = True) -> Optional[CategoryRef]:
    choices = shop.categories()
    show_categories(choices)
    raw = await ask("Category (r = recommended" + (", blank = all" if allow_all else "") + ")")
    if not raw:
        return None
    if raw.lower() == "r":
        return RECOMMENDED
    for c in choices[1:]:
        if str(c.id) == raw or c.name == raw:
            return c
    console.print(f"[red]Unknown category: {raw}[/red]")
    return None


def reservation_key(shop: Storefront, raw: str):
    for r in shop.reservations.reservations:
        if str(r.id) == raw:
            return r.id
    return raw


# ---------------------------
# Main menu
# ---------------------------
async def menu(shop: Storefront):
    global status_message

    console.clear()
    await try_api(shop.start())
    await try_api(shop.refresh_categories())
    console.print(create_header(shop))

    horizon = shop.horizon()
    active_date = shop.active_date(horizon[0])
    term: Optional[str] = None
    category: Optional[CategoryRef] = None

    while True:
        if status_message:
            console.print(show_status(status_message, "Error" not in status_message))

        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)

        options = [
            ("1", "📦 Show products", "8", "📋 My reservations"),
            ("2", "📅 Change pickup date", "9", "🚶 Choose self pickup"),
            ("3", "🔍 Search", "10", "🚚 Choose delivery"),
            ("4", "🏷️ Filter by category", "11", "❌ Cancel reservation"),
            ("5", "➕ Add one", "12", "🛠️ Manage categories"),
            ("6", "➖ Remove one", "13", "🔄 Refresh"),
            ("7", "✅ Reserve", "q", "👋 Quit"),
        ]
        for row in options:
            menu_table.add_row(*row)

        filters = f"date {active_date}"
        if term:
            filters += f" · search '{term}'"
        if category is not None:
            filters += f" · {category.name}"
        console.print(Panel(menu_table, title="📋 Menu", subtitle=filters, border_style="yellow"))

        choice = await ask(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 14)] + ["q", "quit", "exit"]),
        )

        if choice == "1":
            show_products(shop.listing(active_date, term=term, category=category), active_date)

        elif choice == "2":
            dates = shop.available_dates(term) or shop.horizon()
            labels = [d.isoformat() for d in dates]
            console.print("Available: " + ", ".join(labels))
            raw = await ask("Pickup date", completer=WordCompleter(labels), default=active_date.isoformat())
            try:
                active_date = date.fromisoformat(raw)
            except ValueError:
                console.print("[red]Use YYYY-MM-DD.[/red]")
                continue
            show_products(shop.listing(active_date, term=term, category=category), active_date)

        elif choice == "3":
            term = await ask("Search term (blank clears)") or None
            views = shop.listing(active_date, term=term, category=category)
            if not views and term:
                closest = shop.closest_date(active_date, term)
                if closest is not None:
                    console.print(f"[cyan]No hits on {active_date}, showing {closest}[/cyan]")
                    active_date = closest
                    views = shop.listing(active_date, term=term, category=category)
            show_products(views, active_date)

        elif choice == "4":
            category = await pick_category(shop)
            show_products(shop.listing(active_date, term=term, category=category), active_date)

        elif choice in ("5", "6"):
            pid = await ask_int("Product ID")
            if pid is None:
                continue
            qty = shop.increment(pid) if choice == "5" else shop.decrement(pid)
            console.print(f"Quantity for #{pid}: [bold]{qty}[/bold]")

        elif choice == "7":
            pid = await ask_int("Product ID")
            if pid is None:
                continue
            outcome = await try_api(shop.reserve(pid))
            if outcome is None:
                continue
            r = outcome.reservation
            lines = [
                "[green]Reserved![/green]",
                f"Reservation: [bold]{r.id}[/bold]",
                f"{r.product_name} x{r.quantity} · pickup {r.pickup_date} · {r.amount:,}",
            ]
            if outcome.options.self_pickup:
                lines.append("Self pickup available (option 9)")
            elif outcome.options.self_pickup_denied_reason:
                lines.append(f"[dim]{outcome.options.self_pickup_denied_reason}[/dim]")
            if outcome.options.delivery:
                lines.append(f"Delivery available from {outcome.options.delivery_min_amount or 0:,} (option 10)")
            console.print(Panel.fit("\n".join(lines), title="✅ Reservation"))

        elif choice == "8":
            reservations = await try_api(shop.my_reservations())
            if reservations is not None:
                show_reservations(reservations)

        elif choice in ("9", "10", "11"):
            raw = await ask("Reservation ID")
            rid = reservation_key(shop, raw)
            if choice == "9":
                updated = await try_api(shop.choose_self_pickup(rid), success_msg="Self pickup confirmed")
                if updated is not None:
                    show_reservations([updated])
            elif choice == "10":
                intent = await try_api(shop.choose_delivery(rid))
                if intent is not None:
                    console.print(Panel.fit(
                        f"Continue to delivery checkout for reservation [bold]{intent.reservation_id}[/bold]"
                        f" ({intent.amount:,})",
                        title="🚚 Delivery",
                    ))
            else:
                await try_api(shop.cancel(rid), success_msg=f"Reservation {raw} canceled")

        elif choice == "12":
            await manage_categories(shop)

        elif choice == "13":
            await try_api(shop.refresh_products(), success_msg="Products refreshed")
            active_date = shop.active_date(active_date, term)

        elif choice.lower() in ("q", "quit", "exit"):
            console.print(Panel.fit("[bold green]See you at pickup! 👋[/bold green]", title="Goodbye"))
            return

        console.print()
        console.rule(style="dim")


async def manage_categories(shop: Storefront):
    await try_api(shop.refresh_categories())
    show_categories(shop.categories())
    action = await ask(
        "add / rename / delete / move / members",
        completer=WordCompleter(["add", "rename", "delete", "move", "members"]),
    )

    if action == "add":
        name = await ask("Name")
        await try_api(shop.create_category(name), success_msg=f"Category '{name}' added")

    elif action in ("rename", "delete", "members"):
        target = await pick_category(shop, allow_all=False)
        if target is None:
            return
        if action == "rename":
            name = await ask("New name", default=target.name)
            await try_api(shop.rename_category(target, name), success_msg="Category renamed")
        elif action == "delete":
            await try_api(shop.delete_category(target), success_msg=f"Category '{target.name}' deleted")
        else:
            current = await try_api(shop.category_membership(target))
            if current is None:
                return
            raw = await ask(
                "Product IDs (comma separated)",
                completer=product_completer(shop),
                default=",".join(str(i) for i in current),
            )
            try:
                ids = [int(x) for x in raw.replace(" ", "").split(",") if x]
            except ValueError:
                console.print("[red]Product IDs must be numbers.[/red]")
                return
            await try_api(shop.replace_category_membership(target, ids), success_msg="Membership saved")

    elif action == "move":
        src = await ask_int("Move position")
        dst = await ask_int("To position")
        if src is None or dst is None:
            return
        await try_api(shop.move_category(src, dst), success_msg="Order saved")

    show_categories(shop.categories())


async def main():
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    async with PickupClient.from_settings(settings) as client:
        shop = Storefront(client, settings)
        try:
            await menu(shop)
        finally:
            await shop.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, EOFError):
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
