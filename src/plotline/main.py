"""Plotline CLI 入口：叙事文本 → 角色时间线。"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from plotline.agents.extractor import TimelineExtractor
from plotline.config.settings import TimelineConfig, load_config
from plotline.graph.extraction_graph import generate_story
from plotline.llm.factory import AVAILABLE_MODELS, check_api_key, init_chat_model
from plotline.models.story import Story
from plotline.state.cumulative import character_snapshots
from plotline.state.store import TimelineStore

console = Console()
logger = logging.getLogger("plotline")


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _load_story_file(path: str, config: TimelineConfig) -> TimelineStore:
    """读取 Story JSON 文件并载入新的 store；文件不合法时退出。"""
    store = TimelineStore.from_config(config)
    if not store.load_story(_read_text(path)):
        console.print(f"[red]无法导入故事文件: {path}[/red]")
        sys.exit(1)
    return store


def _write_output(store: TimelineStore, output: str | None) -> None:
    if not output:
        console.print_json(store.export_story())
        return
    out_path = Path(output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(store.export_story(), encoding="utf-8")
    console.print(f"[green]故事已写入: {out_path}[/green]")


def _format_state(state: dict) -> str:
    return ", ".join(f"{k}:{v}" for k, v in state.items()) or "-"


def _format_items(items: list[str]) -> str:
    return ", ".join(items) or "-"


def _print_story_summary(story: Story) -> None:
    """打印角色最终状态表。"""
    snapshots = character_snapshots(story.characters, story.events)
    table = Table(title=f"《{story.title}》角色状态", show_lines=True)
    table.add_column("角色", style="cyan")
    table.add_column("事件数", justify="right")
    table.add_column("状态", style="yellow")
    table.add_column("物品", style="green")
    table.add_column("认知", style="magenta")

    for character in story.characters:
        snapshot = snapshots.get(character.id)
        count = sum(1 for e in story.events if e.character_id == character.id)
        table.add_row(
            character.name,
            str(count),
            _format_state(snapshot.state) if snapshot else "-",
            _format_items(snapshot.inventory) if snapshot else "-",
            _format_items(snapshot.knowledge) if snapshot else "-",
        )

    console.print(table)
    console.print(
        f"连接 {len(story.connections)} 条，时间槽 {len(story.timeline)} 个，"
        f"原文段落 {len(story.narrative.sections) if story.narrative else 0} 个"
    )


def _print_event_timeline(story: Story, character_name: str | None = None) -> None:
    """按故事时间打印每个事件的累积状态。"""
    names = {c.id: c.name for c in story.characters}
    table = Table(title="事件时间线", show_lines=True)
    table.add_column("步", justify="right", style="cyan")
    table.add_column("角色", style="cyan")
    table.add_column("事件", style="white")
    table.add_column("累积状态", style="yellow")
    table.add_column("累积物品", style="green")
    table.add_column("累积认知", style="magenta")

    for event in sorted(story.events, key=lambda e: e.time_step):
        name = names.get(event.character_id, event.character_id)
        if character_name and name != character_name:
            continue
        table.add_row(
            str(event.time_step),
            name,
            event.description[:60],
            _format_state(event.cumulative_state),
            _format_items(event.cumulative_inventory),
            _format_items(event.cumulative_knowledge),
        )

    console.print(table)


def cmd_extract(args: argparse.Namespace, config: TimelineConfig) -> None:
    """从叙事文本抽取时间线。"""
    narrative_text = _read_text(args.narrative)
    language = args.language or config.language

    store = TimelineStore.from_config(config)
    store.update_narrative(narrative_text)

    response_text = _read_text(args.from_response) if args.from_response else None
    extractor = None
    if response_text is None:
        model = init_chat_model(config.extraction_model)
        extractor = TimelineExtractor.from_config(config, model)

    with console.status("正在抽取时间线..."):
        outcome = generate_story(
            store,
            extractor,
            language=language,
            response_text=response_text,
            ref_confidence=config.ref_confidence,
        )

    if not outcome.success:
        err = outcome.error
        console.print(f"[red]生成失败 [{err.type if err else '?'}]: {err.message if err else ''}[/red]")
        sys.exit(1)

    _print_story_summary(store.story)
    if outcome.report and outcome.report.has_losses:
        console.print(
            f"[yellow]丢弃连接 {outcome.report.dropped_connections} 条，"
            f"未匹配行动者 {len(outcome.report.unresolved_actors)} 个，"
            f"未定位摘录 {len(outcome.report.unlocated_excerpts)} 个[/yellow]"
        )
    _write_output(store, args.output)


def cmd_recompute(args: argparse.Namespace, config: TimelineConfig) -> None:
    """导入故事文件，重新计算累积状态后导出。"""
    store = _load_story_file(args.story, config)
    _write_output(store, args.output or args.story)


def cmd_show(args: argparse.Namespace, config: TimelineConfig) -> None:
    """展示故事的角色状态与事件时间线。"""
    store = _load_story_file(args.story, config)
    story = store.story
    _print_story_summary(story)
    _print_event_timeline(story, args.character)


def cmd_check_key(args: argparse.Namespace, config: TimelineConfig) -> None:
    """列出可选模型并验证当前配置的 API key。"""
    model_config = config.extraction_model
    if args.model:
        model_config = model_config.model_copy(update={"model_name": args.model})

    table = Table(title="可选模型")
    table.add_column("模型", style="cyan")
    table.add_column("说明")
    for model_id, description in AVAILABLE_MODELS.items():
        marker = " *" if model_id == model_config.model_name else ""
        table.add_row(model_id + marker, description)
    console.print(table)

    with console.status(f"正在验证 {model_config.model_name} ..."):
        valid, error = check_api_key(model_config)
    if not valid:
        console.print(f"[red]API key 不可用: {error}[/red]")
        sys.exit(1)
    console.print("[green]API key 可用[/green]")


def main() -> None:
    """CLI 主入口。"""
    from dotenv import load_dotenv
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="plotline",
        description="Plotline - 叙事文本到角色时间线",
    )
    parser.add_argument("--config", "-c", default=None, help="YAML 配置文件路径")
    parser.add_argument("--verbose", "-v", action="store_true", help="详细日志输出")
    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    extract_parser = subparsers.add_parser("extract", help="从叙事文本抽取角色时间线")
    extract_parser.add_argument("narrative", help="叙事文本文件路径")
    extract_parser.add_argument(
        "--language", "-l", choices=["ja", "en"], default=None, help="抽取输出语言"
    )
    extract_parser.add_argument(
        "--from-response", default="", help="离线模式：解析已保存的模型响应文件，不调用模型"
    )
    extract_parser.add_argument("--output", "-o", default="", help="输出的故事 JSON 路径")

    recompute_parser = subparsers.add_parser("recompute", help="重新计算故事文件的累积状态")
    recompute_parser.add_argument("story", help="故事 JSON 文件路径")
    recompute_parser.add_argument("--output", "-o", default="", help="输出路径（默认覆盖原文件）")

    show_parser = subparsers.add_parser("show", help="展示故事的角色状态与事件时间线")
    show_parser.add_argument("story", help="故事 JSON 文件路径")
    show_parser.add_argument("--character", default=None, help="只显示指定角色的事件")

    check_parser = subparsers.add_parser("check-key", help="验证 API key 并列出可选模型")
    check_parser.add_argument("--model", "-m", default=None, help="验证指定模型（默认使用配置中的模型）")

    args = parser.parse_args()

    # 配置日志
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
    )

    config = load_config(args.config)

    if args.command == "extract":
        cmd_extract(args, config)
    elif args.command == "recompute":
        cmd_recompute(args, config)
    elif args.command == "show":
        cmd_show(args, config)
    elif args.command == "check-key":
        cmd_check_key(args, config)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
