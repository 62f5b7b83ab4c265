"""
CLI 命令模块 - deskpilot 的所有命令行命令定义。

本模块使用 Typer 框架定义完整的 CLI 命令体系：
- onboard：初始化配置、数据目录和工作空间
- agent：与助手交互（单条消息或交互式对话）
- memory：查看和编辑持久记忆（会话、消息、搜索、笔记、清除）
- status：查看系统状态

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（Markdown 渲染、表格）
- prompt_toolkit：交互式输入（历史记录、行编辑）

交互模式的结构：
    输入循环 → MessageBus.inbound → TurnExecutor.run()（后台任务）
    TurnExecutor → MessageBus.outbound → dispatch_outbound() → 打印回调
推理进行时输入循环仍在等待输入，所以可以随时输入 /cancel。
"""

import asyncio
from pathlib import Path

import typer
from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from deskpilot import __logo__, __version__

app = typer.Typer(
    name="deskpilot",
    help=f"{__logo__} deskpilot - Desktop Automation Assistant",
    no_args_is_help=True,
)

console = Console()
EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}

# ---------------------------------------------------------------------------
# CLI 输入输出
# ---------------------------------------------------------------------------

_PROMPT_SESSION: PromptSession | None = None


def _init_prompt_session() -> None:
    """创建 prompt_toolkit 会话，历史记录保存在 ~/.deskpilot/history/cli_history。"""
    global _PROMPT_SESSION
    history_file = Path.home() / ".deskpilot" / "history" / "cli_history"
    history_file.parent.mkdir(parents=True, exist_ok=True)
    _PROMPT_SESSION = PromptSession(
        history=FileHistory(str(history_file)),
        enable_open_in_editor=False,
        multiline=False,
    )


async def _read_interactive_input_async() -> str:
    if _PROMPT_SESSION is None:
        raise RuntimeError("Call _init_prompt_session() first")
    try:
        with patch_stdout():
            return await _PROMPT_SESSION.prompt_async(HTML("<b fg='ansiblue'>You:</b> "))
    except EOFError as exc:
        raise KeyboardInterrupt from exc


def _print_agent_response(response: str, render_markdown: bool, handler: str | None = None) -> None:
    """以一致的终端样式渲染助手回复。"""
    content = response or ""
    body = Markdown(content) if render_markdown else Text(content)
    label = f" [dim]({handler})[/dim]" if handler else ""
    console.print()
    console.print(f"[cyan]{__logo__} deskpilot[/cyan]{label}")
    console.print(body)
    console.print()


def _is_exit_command(command: str) -> bool:
    return command.lower() in EXIT_COMMANDS


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} deskpilot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """deskpilot CLI 根命令回调。"""


# ============================================================================
# Onboard
# ============================================================================


@app.command()
def onboard():
    """
    初始化 deskpilot。

    1. 在 ~/.deskpilot/ 下创建默认配置文件 config.json
    2. 创建工作空间目录
    3. 创建记忆数据库
    """
    from deskpilot.config.loader import get_config_path, save_config
    from deskpilot.config.schema import Config
    from deskpilot.memory.store import MemoryStore
    from deskpilot.utils.helpers import get_data_path, get_workspace_path

    data_dir = get_data_path()
    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print(f"[green]✓[/green] Data directory at {data_dir}")

    workspace = get_workspace_path(config.tools.workspace)
    console.print(f"[green]✓[/green] Created workspace at {workspace}")

    async def init_store():
        async with MemoryStore(config.memory.database_path):
            pass

    asyncio.run(init_store())
    console.print(f"[green]✓[/green] Created memory database at {config.memory.database_path}")

    console.print(f"\n{__logo__} deskpilot is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your API key to [cyan]~/.deskpilot/config.json[/cyan]")
    console.print("     (or point providers.ollama.apiBase at a local Ollama server)")
    console.print("  2. Chat: [cyan]deskpilot agent -m \"list files in ~/Downloads\"[/cyan]")


# ============================================================================
# Agent
# ============================================================================


def _make_provider(config):
    """
    根据配置创建 LiteLLM 提供者实例。

    未配置 API Key 且不是本地模型（ollama）时打印错误并退出。
    """
    from deskpilot.providers.litellm_provider import LiteLLMProvider

    p = config.get_provider()
    model = config.agents.defaults.model
    name = config.get_provider_name()
    if not (p and (p.api_key or name == "ollama")):
        console.print("[red]Error: No API key configured.[/red]")
        console.print("Set one in ~/.deskpilot/config.json under providers section")
        raise typer.Exit(1)
    return LiteLLMProvider(
        api_key=p.api_key or None,
        api_base=config.get_api_base(),
        default_model=model,
        extra_headers=p.extra_headers,
        provider_name=name,
    )


async def _build_executor(config, provider, bus=None):
    """
    按配置组装存储、上下文管理器、路由器、工具和回合执行器。

    返回：
        (MemoryStore, TurnExecutor)，调用方负责在结束时关闭 store
    """
    from deskpilot.agent.handlers import default_registry
    from deskpilot.agent.loop import TurnExecutor
    from deskpilot.agent.tools import default_tool_registry
    from deskpilot.memory.context import ContextManager
    from deskpilot.memory.store import MemoryStore

    defaults = config.agents.defaults
    mem = config.memory

    store = MemoryStore(mem.database_path)
    await store.init()
    context = ContextManager(
        store,
        hot_turns=mem.hot_turns,
        warm_chunks=mem.warm_chunks,
        similarity_threshold=mem.similarity_threshold,
        warm_retrieval=mem.warm_retrieval,
        restore_hot=mem.restore_hot,
    )
    tools = default_tool_registry(
        context,
        workspace=config.workspace_path,
        exec_timeout=config.tools.exec.timeout,
        restrict_to_workspace=config.tools.restrict_to_workspace,
    )
    executor = TurnExecutor(
        provider=provider,
        context=context,
        handlers=default_registry(defaults.default_handler),
        tools=tools,
        bus=bus,
        model=defaults.model,
        max_tokens=defaults.max_tokens,
        temperature=defaults.temperature,
        stop_sequences=defaults.stop_sequences or None,
        inference_retries=defaults.inference_retries,
        summarize_on_new=defaults.summarize_on_new,
        workspace=config.workspace_path,
    )
    return store, executor


@app.command()
def agent(
    message: str = typer.Option(None, "--message", "-m", help="Message to send to the assistant"),
    handler: str = typer.Option(None, "--handler", help="Force a handler (coder, filer, shell, memory, general)"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render assistant output as Markdown"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show deskpilot runtime logs during chat"),
):
    """
    与助手交互。

    1. 单条消息模式：deskpilot agent -m "..." → 输出回复后退出
    2. 交互模式：deskpilot agent → 进入交互式对话，/cancel 取消正在进行的请求
    """
    from deskpilot.bus.events import STATE_CANCELLED, STATE_FAILED, STATE_INFO, InboundMessage, OutboundMessage
    from deskpilot.bus.queue import MessageBus
    from deskpilot.config.loader import load_config

    config = load_config()
    provider = _make_provider(config)

    if logs:
        logger.enable("deskpilot")
    else:
        logger.disable("deskpilot")

    if message:
        async def run_once():
            store, executor = await _build_executor(config, provider)
            try:
                with console.status("[dim]deskpilot is thinking...[/dim]", spinner="dots"):
                    response = await executor.process_direct(message, handler=handler)
            finally:
                await store.close()
            _print_agent_response(response, render_markdown=markdown)

        asyncio.run(run_once())
        return

    _init_prompt_session()
    console.print(
        f"{__logo__} Interactive mode (type [bold]exit[/bold] or [bold]Ctrl+C[/bold] to quit, "
        "[bold]/cancel[/bold] to stop a running request)\n"
    )

    async def on_outbound(msg: OutboundMessage) -> None:
        if msg.state == STATE_FAILED:
            console.print(f"[red]{msg.content}[/red]")
        elif msg.state in (STATE_CANCELLED, STATE_INFO):
            console.print(f"[yellow]{msg.content}[/yellow]")
        else:
            _print_agent_response(msg.content, render_markdown=markdown, handler=msg.handler)

    async def run_interactive():
        bus = MessageBus()
        store, executor = await _build_executor(config, provider, bus=bus)
        bus.subscribe_outbound(on_outbound)
        loop_task = asyncio.create_task(executor.run())
        dispatch_task = asyncio.create_task(bus.dispatch_outbound())
        try:
            while True:
                try:
                    user_input = await _read_interactive_input_async()
                except KeyboardInterrupt:
                    break
                command = user_input.strip()
                if not command:
                    continue
                if _is_exit_command(command):
                    break
                await bus.publish_inbound(InboundMessage(content=command, handler=handler))
        finally:
            executor.stop()
            await asyncio.gather(loop_task, return_exceptions=True)
            await executor.drain()
            bus.stop()
            await asyncio.gather(dispatch_task, return_exceptions=True)
            await store.close()
            console.print("\nGoodbye!")

    asyncio.run(run_interactive())


# ============================================================================
# Memory Commands
# ============================================================================


memory_app = typer.Typer(help="Inspect and edit persistent memory")
app.add_typer(memory_app, name="memory")


def _run_with_store(action):
    """打开记忆数据库，执行 action(store)，再关闭。"""
    from deskpilot.config.loader import load_config
    from deskpilot.memory.store import MemoryStore

    config = load_config()

    async def run():
        async with MemoryStore(config.memory.database_path) as store:
            return await action(store)

    return asyncio.run(run())


@memory_app.command("sessions")
def memory_sessions(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of sessions to show"),
):
    """列出最近更新的会话。"""
    async def action(store):
        sessions = await store.get_sessions(limit=limit)
        return [(s, await store.count_messages(s.id)) for s in sessions]

    rows = _run_with_store(action)
    if not rows:
        console.print("No sessions yet.")
        return

    table = Table(title="Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Created")
    table.add_column("Updated")
    table.add_column("Messages", justify="right")
    table.add_column("Summary")
    for session, count in rows:
        table.add_row(
            session.id,
            session.created_at[:16],
            session.updated_at[:16],
            str(count),
            (session.summary or "")[:60],
        )
    console.print(table)


@memory_app.command("messages")
def memory_messages(
    session_id: str = typer.Argument(None, help="Session ID (defaults to the most recently updated session)"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of messages to show"),
):
    """显示一个会话的消息（按时间先后）。只读，不会新建会话。"""
    async def action(store):
        sid = session_id
        if sid is None:
            latest = await store.get_sessions(limit=1)
            if not latest:
                return None, []
            sid = latest[0].id
        return sid, await store.get_messages(sid, limit=limit)

    sid, messages = _run_with_store(action)
    if sid is None:
        console.print("No sessions yet.")
        return
    console.print(f"Session [cyan]{sid}[/cyan]\n")
    for m in reversed(messages):
        handler = f" ({m.handler})" if m.handler else ""
        console.print(f"[dim]{m.created_at[:19]}[/dim] [bold]{m.role}{handler}[/bold]: {m.content}")


@memory_app.command("search")
def memory_search(
    query: str = typer.Argument(..., help="Text to search for"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum results"),
):
    """在全部历史消息中搜索。"""
    async def action(store):
        return await store.search_messages(query, limit=limit)

    messages = _run_with_store(action)
    if not messages:
        console.print(f"Nothing found for '{query}'.")
        return
    for m in messages:
        console.print(f"[dim]{m.created_at[:19]} {m.session_id[:8]}[/dim] [bold]{m.role}[/bold]: {m.content}")


@memory_app.command("notes")
def memory_notes(
    tag: list[str] = typer.Option(None, "--tag", "-t", help="Filter by tag (repeatable, any match)"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum notes"),
):
    """列出笔记，可按标签过滤（任一标签匹配即可）。"""
    async def action(store):
        return await store.get_notes(tag or None, limit=limit)

    notes = _run_with_store(action)
    if not notes:
        console.print("No notes.")
        return

    table = Table(title="Notes")
    table.add_column("Created", style="dim")
    table.add_column("Tags", style="cyan")
    table.add_column("Content")
    for note in notes:
        table.add_row(note.created_at[:16], ", ".join(note.tags), note.content)
    console.print(table)


@memory_app.command("note")
def memory_note(
    content: str = typer.Argument(..., help="Note text"),
    tag: list[str] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
):
    """保存一条笔记。"""
    async def action(store):
        return await store.save_note(content, tag or [])

    note_id = _run_with_store(action)
    console.print(f"[green]✓[/green] Saved note {note_id}")


@memory_app.command("clear")
def memory_clear(
    session_id: str = typer.Argument(..., help="Session ID to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """删除一个会话及其全部消息（不可恢复）。"""
    if not yes and not typer.confirm(f"Delete session {session_id} and all its messages?"):
        raise typer.Exit()

    async def action(store):
        await store.clear_session(session_id)

    _run_with_store(action)
    console.print(f"[green]✓[/green] Cleared session {session_id}")


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """
    显示 deskpilot 状态：配置文件、工作空间、数据库、模型和各提供者的 Key 配置情况。
    """
    from deskpilot.config.loader import get_config_path, load_config
    from deskpilot.providers.registry import PROVIDERS

    config_path = get_config_path()
    config = load_config()
    workspace = config.workspace_path
    db_path = config.memory.database_path

    console.print(f"{__logo__} deskpilot Status\n")

    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Workspace: {workspace} {'[green]✓[/green]' if workspace.exists() else '[red]✗[/red]'}")
    console.print(f"Memory: {db_path} {'[green]✓[/green]' if db_path.exists() else '[red]✗[/red]'}")

    if config_path.exists():
        console.print(f"Model: {config.agents.defaults.model}")
        for spec in PROVIDERS:
            p = getattr(config.providers, spec.name, None)
            if p is None:
                continue
            if spec.is_local:
                if p.api_base:
                    console.print(f"{spec.label}: [green]✓ {p.api_base}[/green]")
                else:
                    console.print(f"{spec.label}: [dim]not set[/dim]")
            else:
                has_key = bool(p.api_key)
                console.print(f"{spec.label}: {'[green]✓[/green]' if has_key else '[dim]not set[/dim]'}")


if __name__ == "__main__":
    app()
