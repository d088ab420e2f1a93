# client_interactive.py - Interactive Encrypted Trust Score Tracker with UI

import os
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich import box

from client import TrustScoreClient, score_input_hint, validate_score_input
from fhe_executor import handle_to_hex
from reveal import RevealState
from trust_errors import TrustLedgerError
from wallet import Wallet

console = Console()

SERVER_URL = os.environ.get("TRUST_NODE_URL", "http://127.0.0.1:5000")

DECRYPTION_STEPS = [
    (RevealState.GENERATING_SESSION_KEYS, "1. Generate Session Keys",
     "Creating ephemeral keypair for this session"),
    (RevealState.AWAITING_AUTHORIZATION_SIGNATURE, "2. Authorize Decryption",
     "Requesting wallet signature to verify ownership"),
    (RevealState.REQUESTING_REMOTE_REENCRYPTION, "3. Gateway Re-encryption",
     "Key management service re-encrypting data for your session key"),
    (RevealState.OPENING_LOCALLY, "4. Local Reveal",
     "Decrypting the re-encrypted data on this machine"),
]


def show_decryption_step(session, state):
    """Print the current step of a reveal as it happens"""
    for step_state, label, desc in DECRYPTION_STEPS:
        if step_state is state:
            console.print(f"  [magenta]{label}[/magenta] [dim]{desc}[/dim]  "
                          f"[dim]({handle_to_hex(session.handle)[:12]}...)[/dim]")
    if state is RevealState.COMPLETED:
        console.print("  [green]✓ Revealed[/green]")


def show_banner(address):
    """Display welcome banner"""
    banner = f"""
[bold cyan]╔═══════════════════════════════════════════════════════════╗
║                                                           ║
║          🔐 ENCRYPTED TRUST SCORE TRACKER 🔐              ║
║                                                           ║
║  🔒 Scores stay encrypted on the ledger (TenSEAL BFV)     ║
║  🧮 Totals and averages computed homomorphically          ║
║  🛡️  Reveals sealed to ML-KEM-1024 session keys            ║
║                                                           ║
╚═══════════════════════════════════════════════════════════╝[/bold cyan]

[bold green]Wallet: {address}[/bold green]
"""
    console.print(banner)


def show_menu():
    """Display main menu"""
    table = Table(show_header=False, box=box.SIMPLE, padding=(0, 2))
    table.add_column("Option", style="cyan bold")
    table.add_column("Description", style="white")

    table.add_row("1", "📝 Record Trust Score")
    table.add_row("2", "🔄 Refresh Handles")
    table.add_row("3", "🔓 Decrypt Scores")
    table.add_row("4", "📜 View History")
    table.add_row("5", "✅ Validate Scores")
    table.add_row("6", "🚪 Exit")

    console.print("\n")
    console.print(table)
    console.print()


def show_summary(client):
    """Encrypted handles next to whatever has been decrypted so far"""
    table = Table(box=box.ROUNDED)
    table.add_column("Value", style="cyan")
    table.add_column("Handle", style="dim")
    table.add_column("Clear", style="green")

    def clear(value):
        return "🔒 Encrypted" if value is None else str(value)

    table.add_row("Events", "-", str(client.event_count))
    table.add_row("Total", handle_to_hex(client.total_handle)[:18] + "...", clear(client.clear_total))
    table.add_row("Average", handle_to_hex(client.average_handle)[:18] + "...", clear(client.clear_average))
    console.print(table)


def show_history(client):
    if not client.history_handles:
        console.print("[yellow]No trust events recorded yet[/yellow]")
        return
    table = Table(box=box.ROUNDED)
    table.add_column("#", style="cyan")
    table.add_column("Handle", style="dim")
    table.add_column("Score", style="green")
    for index, handle in enumerate(client.history_handles):
        value = client.clear_history.get(handle)
        table.add_row(str(index), handle_to_hex(handle)[:18] + "...",
                      "🔒 Encrypted" if value is None else str(value))
    console.print(table)


def record_score(client):
    console.print("\n[bold cyan]═══ Record Trust Score ═══[/bold cyan]\n")
    text = Prompt.ask("[cyan]Trust score (1-10)[/cyan]", default="")
    hint = score_input_hint(text)
    if hint:
        console.print(f"[dim]{hint}[/dim]")
    score, error = validate_score_input(text)
    if error:
        console.print(f"✗ {error}", style="bold red")
        return
    with console.status("[cyan]Encrypting and recording score...", spinner="dots"):
        count = client.record_trust_event(score)
    console.print(f"✓ Score recorded, {count} event(s) on the ledger", style="bold green")


def decrypt_scores(client):
    console.print("\n[bold cyan]═══ FHE Decryption Process ═══[/bold cyan]\n")
    if client.event_count == 0:
        console.print("[yellow]Nothing to decrypt yet[/yellow]")
        return
    result = client.decrypt_scores(on_transition=show_decryption_step)
    console.print(Panel(
        f"[white]Total: [bold]{result['total']}[/bold]\n"
        f"Average: [bold]{result['average']}[/bold]\n"
        f"History: {result['history']}[/white]",
        title="Decrypted", border_style="green", box=box.ROUNDED,
    ))


def validate_scores(client):
    console.print("\n[bold cyan]═══ Validate Scores ═══[/bold cyan]\n")
    text = Prompt.ask("[cyan]Scores to check, comma separated[/cyan]")
    try:
        scores = [int(part) for part in text.split(",") if part.strip()]
    except ValueError:
        console.print("✗ Scores must be whole numbers", style="bold red")
        return
    with console.status("[cyan]Running homomorphic range check...", spinner="dots"):
        results = client.validate_scores(scores)
    for score, valid in zip(scores, results):
        mark = "[green]✓ valid[/green]" if valid else "[red]✗ out of range[/red]"
        console.print(f"  {score}: {mark}")


def main():
    """Main interactive loop"""
    console.clear()
    console.print("\n[bold cyan]🔐 Encrypted Trust Score Tracker[/bold cyan]\n")

    with console.status("[cyan]Connecting to trust node...", spinner="dots"):
        wallet = Wallet.generate()
        client = TrustScoreClient(wallet, server_url=SERVER_URL)
        client.refresh()

    console.clear()
    show_banner(wallet.address)
    console.print("[bold green]✓ Client ready![/bold green]\n")

    actions = {
        "1": record_score,
        "2": lambda c: (c.refresh(), show_summary(c)),
        "3": decrypt_scores,
        "4": show_history,
        "5": validate_scores,
    }

    while True:
        show_menu()
        choice = Prompt.ask("[bold cyan]Choose an option[/bold cyan]", choices=["1", "2", "3", "4", "5", "6"])

        if choice == "6":
            console.print("\n[bold cyan]Goodbye! Your scores stay encrypted. 🔒[/bold cyan]\n")
            break

        try:
            actions[choice](client)
        except TrustLedgerError as e:
            console.print(f"✗ {type(e).__name__}: {e.message}", style="bold red")
        except ValueError as e:
            console.print(f"✗ {e}", style="bold red")

        console.print()
        Prompt.ask("\n[dim]Press Enter to continue...[/dim]", default="")
        console.clear()
        show_banner(wallet.address)


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Session interrupted. Goodbye![/yellow]\n")
    except Exception as e:
        console.print(f"\n[bold red]Error: {e}[/bold red]\n")
        import traceback
        traceback.print_exc()
