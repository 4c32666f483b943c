import argparse
from typing import Any, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from townsfolk.bootstrap import Runtime
from townsfolk.domain.models.entity import Entity
from townsfolk.domain.models.turn_context import Reputation, TurnContext


_BORDER_ROSTER = "yellow"
_BORDER_PROFILE = "cyan"
_BORDER_TURNS = "green"
_BORDER_STATS = "magenta"
_FACTIONS = ("elite", "church", "guild", "merchants", "indigenous", "commonFolk")


def _ornate_title(title: str) -> str:
    core = str(title or "").strip() or "Panel"
    return f"[bold yellow]{core}[/bold yellow]"


def _text(value: Any, default: str = "-") -> str:
    if value is None or value == "" or value == []:
        return default
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="townsfolk", description="Inspect and simulate a town's population.")
    commands = parser.add_subparsers(dest="command")

    roster = commands.add_parser("roster", help="list registered entities")
    roster.add_argument("--type", dest="entity_type", default=None)
    roster.add_argument("--tier", default=None)

    show = commands.add_parser("show", help="show one entity's enriched profile")
    show.add_argument("name")

    simulate = commands.add_parser("simulate", help="play turns with the offline narrator")
    simulate.add_argument("--turns", type=int, default=5)
    simulate.add_argument("--start-turn", type=int, default=1)
    simulate.add_argument("--action", default="I open the door and greet whoever is there.")
    simulate.add_argument("--date", default="1680-08-22")
    simulate.add_argument("--time", default="10:00 AM")
    simulate.add_argument("--location", default="Botica de la Amargura")
    simulate.add_argument("--wealth", type=float, default=50.0)
    simulate.add_argument("--reputation", type=int, default=50)
    for faction in _FACTIONS:
        simulate.add_argument(f"--{faction.lower()}", dest=f"faction_{faction}", type=int, default=None)

    commands.add_parser("stats", help="entity counts by type and tier")
    return parser


def render_roster(console: Console, entities: Sequence[Entity]) -> None:
    if not entities:
        console.print(
            Panel.fit("No entities registered yet.", title=_ornate_title("Roster"), border_style=_BORDER_ROSTER)
        )
        return
    table = Table(show_header=True, header_style="bold yellow")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Tier")
    table.add_column("Occupation")
    for entity in entities:
        table.add_row(
            entity.id,
            entity.name,
            entity.entity_type,
            entity.tier,
            _text(entity.facet("social").get("occupation")),
        )
    console.print(Panel.fit(table, title=_ornate_title("Roster"), border_style=_BORDER_ROSTER))


def render_profile(console: Console, entity: Entity) -> None:
    social = entity.facet("social")
    appearance = entity.facet("appearance")
    personality = entity.facet("personality")
    temperament = personality.get("temperament") or {}
    dialogue = entity.facet("dialogue")
    biography = entity.facet("biography")

    grid = Table.grid(padding=(0, 1))
    grid.add_column(style="bold yellow", justify="right")
    grid.add_column(style="white")
    grid.add_row("Type", f"{entity.entity_type} ({entity.tier})")
    grid.add_row("Occupation", _text(social.get("occupation")))
    grid.add_row("Class", _text(social.get("class")))
    grid.add_row("Casta", _text(social.get("casta")))
    grid.add_row("Gender", _text(entity.gender))
    grid.add_row("Age", _text(appearance.get("age")))
    grid.add_row("Build", _text(appearance.get("build")))
    grid.add_row("Temperament", _text(temperament.get("primary")))
    grid.add_row("Traits", _text(personality.get("traits")))
    grid.add_row("Birthplace", _text(biography.get("birthplace")))
    grid.add_row("Greeting", _text(dialogue.get("greeting")))
    description = str(entity.attributes.get("description") or "").strip()
    if description:
        grid.add_row("Notes", description)
    console.print(Panel.fit(grid, title=_ornate_title(entity.name), border_style=_BORDER_PROFILE))


def _reputation(args: argparse.Namespace) -> Reputation:
    factions = {}
    for faction in _FACTIONS:
        value = getattr(args, f"faction_{faction}", None)
        if value is not None:
            factions[faction] = int(value)
    return Reputation(overall=int(args.reputation), factions=factions)


def run_simulation(runtime: Runtime, args: argparse.Namespace, console: Console) -> List[Any]:
    reputation = _reputation(args)
    results = []
    for offset in range(max(0, int(args.turns))):
        ctx = TurnContext(
            scenario_id=runtime.scenario.id,
            player_action=args.action,
            date=args.date,
            time=args.time,
            location=args.location,
            reputation=reputation,
            wealth=float(args.wealth),
            turn_number=int(args.start_turn) + offset,
        )
        results.append(runtime.turns.play_turn(ctx))

    table = Table(show_header=True, header_style="bold yellow")
    table.add_column("Turn", justify="right")
    table.add_column("Encounter")
    table.add_column("Narrative")
    table.add_column("New", justify="right")
    for result in results:
        who = result.selected.name if result.selected is not None else "-"
        if result.critical:
            who = f"{who} [bold red](critical)[/bold red]"
        table.add_row(str(result.turn_number), who, result.narrative, str(len(result.new_entities)))
    console.print(Panel.fit(table, title=_ornate_title(runtime.scenario.title), border_style=_BORDER_TURNS))
    return results


def render_stats(console: Console, runtime: Runtime) -> None:
    stats = runtime.store.stats()
    grid = Table.grid(padding=(0, 1))
    grid.add_column(style="bold yellow", justify="right")
    grid.add_column(style="white")
    grid.add_row("Total", str(stats.total))
    grid.add_row("Clickable", str(stats.clickable))
    for entity_type, count in sorted(stats.by_type.items()):
        grid.add_row(f"type:{entity_type}", str(count))
    for tier, count in sorted(stats.by_tier.items()):
        grid.add_row(f"tier:{tier}", str(count))
    console.print(Panel.fit(grid, title=_ornate_title("Store"), border_style=_BORDER_STATS))


def run(runtime: Runtime, args: argparse.Namespace, console: Optional[Console] = None) -> int:
    console = console or Console()
    command = args.command or "roster"
    if command == "roster":
        entities = runtime.store.search(
            entity_type=getattr(args, "entity_type", None),
            tier=getattr(args, "tier", None),
        )
        render_roster(console, entities)
        return 0
    if command == "show":
        entity = runtime.store.get_by_name(args.name)
        if entity is None:
            console.print(f"[red]No entity matches '{args.name}'.[/red]")
            return 1
        render_profile(console, entity)
        return 0
    if command == "simulate":
        run_simulation(runtime, args, console)
        return 0
    if command == "stats":
        render_stats(console, runtime)
        return 0
    console.print(f"[red]Unknown command: {command}[/red]")
    return 2
