"""
回合执行器模块 —— deskpilot 的核心处理引擎。

TurnExecutor 把一次用户输入处理成一个完整的回合，状态机如下：

    Idle → Routing → BuildingContext → AwaitingInference → ParsingTools
         → ExecutingTools (0..n) → AwaitingFollowup (可选) → Committing → Done

任何一步都可能进入 Failed。

各状态的职责：
  - Routing:           HandlerRegistry 选出处理器（或接受 @name / --handler 显式指定）
  - BuildingContext:   系统提示词 + 温检索 + 热窗口 + 新的用户消息
  - AwaitingInference: 推理在独立的 asyncio.Task 中运行，完成后的 Task 通过单消费者队列
                       投递回状态机；状态机同时等待队列和取消信号
  - ParsingTools:      解析回复中的工具指令，没有指令是最常见的情况
  - ExecutingTools:    按解析顺序逐个执行，单个工具失败不影响后续工具
  - AwaitingFollowup:  至少执行过一个工具时，把第一次回复和工具结果再发给模型；
                       这次调用失败时，回退为"第一次回复 + 工具结果的纯文本"
  - Committing:        用户消息和最终助手消息在同一个事务中写入记忆

失败与取消：
  - InferenceFailure / PersistenceFailure 只终止当前回合，向调用方抛出
  - 推理或追问阶段被取消：抛出 TurnCancelled，不提交任何消息
  - 执行工具阶段被取消：当前工具执行完毕，跳过剩余工具，直接带着已有结果提交，并标记为部分完成
  - 无论哪种失败，都不会出现"有用户消息、没有对应助手消息"的记录

并发：
    同一个执行器上的回合通过 asyncio.Lock 严格串行；run() 在后台任务中执行回合，
    因此前端在推理进行时仍能发送 /cancel。

【Java 开发者类比】
- TurnExecutor 类似于一个持有全部依赖的核心 Service
- _await_inference() 类似于 CompletableFuture + BlockingQueue 的组合
- run() 类似于 @KafkaListener 消息监听器
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from loguru import logger

from deskpilot import __logo__
from deskpilot.agent.context import ContextBuilder, render_tool_results
from deskpilot.agent.handlers.base import Handler
from deskpilot.agent.handlers.router import HandlerRegistry, RouteDecision
from deskpilot.agent.parser import parse_tool_calls
from deskpilot.agent.tools.base import ToolCall, ToolResult
from deskpilot.agent.tools.registry import ToolRegistry
from deskpilot.bus.events import STATE_CANCELLED, STATE_DONE, STATE_FAILED, STATE_INFO, InboundMessage, OutboundMessage
from deskpilot.bus.queue import MessageBus
from deskpilot.errors import DeskpilotError, InferenceFailure, PersistenceFailure, TurnCancelled
from deskpilot.memory.context import ContextManager
from deskpilot.memory.models import Message
from deskpilot.providers.base import InferenceProvider, InferenceResponse
from deskpilot.utils.helpers import preview

HELP_TEXT = (
    f"{__logo__} deskpilot commands:\n"
    "/new — Start a new conversation\n"
    "/clear — Delete the current conversation and start over\n"
    "/cancel — Cancel the running request\n"
    "/help — Show available commands\n"
    "Prefix a request with @handler (e.g. @filer) to pick a handler."
)

SUMMARY_PROMPT = (
    "Summarize this conversation in 2-4 sentences. Keep decisions, results, "
    "and any files or commands that were involved. Reply with the summary only."
)


class TurnState(str, Enum):
    IDLE = "idle"
    ROUTING = "routing"
    BUILDING_CONTEXT = "building_context"
    AWAITING_INFERENCE = "awaiting_inference"
    PARSING_TOOLS = "parsing_tools"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_FOLLOWUP = "awaiting_followup"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


# 可以被 cancel() 打断的状态
CANCELLABLE_STATES = (
    TurnState.ROUTING,
    TurnState.BUILDING_CONTEXT,
    TurnState.AWAITING_INFERENCE,
    TurnState.PARSING_TOOLS,
    TurnState.EXECUTING_TOOLS,
    TurnState.AWAITING_FOLLOWUP,
)


@dataclass
class TurnResult:
    """
    一个成功提交的回合。

    属性:
        content: 最终的助手回复
        handler: 处理该回合的处理器
        route: 路由结果（分数、是否并列、是否显式指定）
        tool_calls / tool_results: 本回合实际执行过的工具调用及结果，一一对应
        partial: 工具执行阶段被取消、只有部分工具执行
        input_tokens / output_tokens: 本回合所有推理调用的 token 合计
        user_message / assistant_message: 已持久化的两条消息
    """
    content: str
    handler: str
    route: RouteDecision
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    partial: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    user_message: Message | None = None
    assistant_message: Message | None = None


class TurnExecutor:
    """
    回合执行器 —— 唯一同时依赖路由、上下文、推理、工具四个组件的地方。

    所有可调参数都通过构造函数传入，不读取全局配置。
    """

    def __init__(
        self,
        provider: InferenceProvider,
        context: ContextManager,
        handlers: HandlerRegistry,
        tools: ToolRegistry,
        bus: MessageBus | None = None,
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        stop_sequences: list[str] | None = None,
        inference_retries: int = 1,
        summarize_on_new: bool = True,
        workspace: Path | None = None,
    ):
        """
        参数：
            provider: 推理提供者
            context: 上下文管理器（独占热窗口）
            handlers: 处理器注册表
            tools: 工具注册表
            bus: 消息总线，只有 run() 需要
            model: 模型名称，None 时使用提供者的默认模型
            max_tokens / temperature: 推理参数
            stop_sequences: 停止序列，原样作为 stop 传给推理提供者
            inference_retries: 第一次推理失败后的额外重试次数
            summarize_on_new: /new 时是否先生成会话摘要
            workspace: 写进系统提示词的工作区路径
        """
        self.provider = provider
        self.context = context
        self.handlers = handlers
        self.tools = tools
        self.bus = bus
        self.model = model or provider.get_default_model()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.stop_sequences = stop_sequences
        self.inference_retries = max(inference_retries, 0)
        self.summarize_on_new = summarize_on_new
        self.builder = ContextBuilder(tools, workspace=workspace)

        self.state = TurnState.IDLE
        self._lock = asyncio.Lock()
        self._cancel = asyncio.Event()
        self._running = False
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # 回合处理
    # ------------------------------------------------------------------

    def cancel(self) -> bool:
        """
        取消正在进行的回合。

        返回:
            bool: 当前确实有可取消的回合时返回 True
        """
        if self.state not in CANCELLABLE_STATES:
            return False
        logger.info(f"Cancel requested while {self.state.value}")
        self._cancel.set()
        return True

    async def process_turn(self, text: str, handler: str | None = None) -> TurnResult:
        """
        处理一个回合。

        参数：
            text: 用户输入
            handler: 显式指定的处理器（跳过打分）

        返回：
            TurnResult

        异常：
            TurnCancelled: 回合被取消，没有提交任何消息
            InferenceFailure: 推理失败，没有提交任何消息
            PersistenceFailure: 提交失败，热窗口和数据库都保持回合前的状态
        """
        async with self._lock:
            self._cancel = asyncio.Event()
            logger.info(f"Turn started: {preview(text)}")
            try:
                result = await self._run_turn(text, handler)
            except TurnCancelled as e:
                self._set_state(TurnState.FAILED)
                logger.info(f"Turn cancelled: {e.reason}")
                raise
            except DeskpilotError as e:
                self._set_state(TurnState.FAILED)
                logger.error(f"Turn failed: {type(e).__name__}: {e}")
                raise
            except Exception:
                self._set_state(TurnState.FAILED)
                raise
            self._set_state(TurnState.DONE)
            logger.info(
                f"Turn finished by {result.handler}: {len(result.tool_results)} tools, "
                f"{result.output_tokens} output tokens{' (partial)' if result.partial else ''}"
            )
            return result

    async def _run_turn(self, text: str, forced: str | None) -> TurnResult:
        self._set_state(TurnState.ROUTING)
        route = self.handlers.resolve(text, forced)
        handler = self.handlers.get(route.name)
        if handler is None:
            raise DeskpilotError(f"handler not registered: {route.name}")
        logger.debug(f"Routed to {handler.name} (score={route.score:.2f}, forced={route.forced})")

        self._set_state(TurnState.BUILDING_CONTEXT)
        await self.context.start()
        history = await self.context.get_context_with_retrieval(text)
        messages = self.builder.build_messages(handler, history, text)

        self._set_state(TurnState.AWAITING_INFERENCE)
        first = await self._infer_with_retry(messages)
        input_tokens, output_tokens = first.input_tokens, first.output_tokens

        self._set_state(TurnState.PARSING_TOOLS)
        calls = parse_tool_calls(first.content)
        executed: list[tuple[ToolCall, ToolResult]] = []
        partial = False
        final = first.content

        if calls:
            self._set_state(TurnState.EXECUTING_TOOLS)
            executed = await self._execute_tools(handler, calls)
            # 最后一个工具执行期间收到的取消同样视为部分回合
            partial = len(executed) < len(calls) or self._cancel.is_set()

            if partial:
                note = f"(partial: cancelled after {len(executed)} of {len(calls)} tools)"
                final = self._fallback(first.content, executed, note)
            elif executed:
                self._set_state(TurnState.AWAITING_FOLLOWUP)
                followup_messages = self.builder.build_followup(messages, first.content, executed)
                try:
                    followup = await self._await_inference(followup_messages)
                except InferenceFailure as e:
                    logger.warning(f"Follow-up inference failed, falling back to raw tool results: {e}")
                    final = self._fallback(first.content, executed)
                else:
                    final = followup.content
                    input_tokens += followup.input_tokens
                    output_tokens += followup.output_tokens

        self._set_state(TurnState.COMMITTING)
        user = Message.user(text, handler=handler.name)
        assistant = Message.assistant(
            final,
            handler=handler.name,
            token_count=output_tokens or None,
            metadata={"tools": [call.name for call, _ in executed], "partial": partial},
        )
        stored_user, stored_assistant = await self.context.commit_turn(user, assistant)

        return TurnResult(
            content=final,
            handler=handler.name,
            route=route,
            tool_calls=[call for call, _ in executed],
            tool_results=[result for _, result in executed],
            partial=partial,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            user_message=stored_user,
            assistant_message=stored_assistant,
        )

    @staticmethod
    def _fallback(reply: str, executed: list[tuple[ToolCall, ToolResult]], note: str | None = None) -> str:
        parts = [reply]
        if executed:
            parts.append(render_tool_results(executed))
        if note:
            parts.append(note)
        return "\n\n".join(p for p in parts if p)

    def _set_state(self, state: TurnState) -> None:
        if state != self.state:
            logger.debug(f"Turn state: {self.state.value} -> {state.value}")
        self.state = state

    # ------------------------------------------------------------------
    # 推理
    # ------------------------------------------------------------------

    async def _infer_with_retry(self, messages: list[dict]) -> InferenceResponse:
        """第一次推理调用，InferenceFailure 时最多重试 inference_retries 次；取消不重试。"""
        attempts = 1 + self.inference_retries
        for attempt in range(1, attempts + 1):
            try:
                return await self._await_inference(messages)
            except InferenceFailure as e:
                if attempt == attempts:
                    raise
                logger.warning(f"Inference attempt {attempt}/{attempts} failed, retrying: {e}")
        raise InferenceFailure("no inference attempts made")

    async def _await_inference(self, messages: list[dict]) -> InferenceResponse:
        """
        在后台任务中执行一次推理，并等待结果或取消信号。

        推理任务完成（成功、失败或被取消）时，done 回调把任务本身放进单消费者队列；
        状态机从队列取到的任务如果是"被取消"状态，说明没有得到终结结果，按 TurnCancelled 处理。
        """
        channel: asyncio.Queue[asyncio.Task] = asyncio.Queue(maxsize=1)
        task = asyncio.create_task(self.provider.infer(
            messages=messages,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            stop=self.stop_sequences,
        ))
        task.add_done_callback(channel.put_nowait)

        delivery = asyncio.ensure_future(channel.get())
        cancel_signal = asyncio.ensure_future(self._cancel.wait())
        try:
            done, _ = await asyncio.wait({delivery, cancel_signal}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (delivery, cancel_signal):
                if not waiter.done():
                    waiter.cancel()
            # 被取消或外层协程被取消时，停止仍在进行的推理
            if not task.done():
                task.cancel()

        if cancel_signal in done:
            raise TurnCancelled(f"cancelled while {self.state.value}")

        finished = delivery.result()
        if finished.cancelled():
            raise TurnCancelled("inference ended without a result")
        error = finished.exception()
        if isinstance(error, InferenceFailure):
            raise error
        if error is not None:
            raise InferenceFailure(f"{type(error).__name__}: {error}") from error
        return finished.result()

    # ------------------------------------------------------------------
    # 工具
    # ------------------------------------------------------------------

    async def _execute_tools(self, handler: Handler, calls: list[ToolCall]) -> list[tuple[ToolCall, ToolResult]]:
        """
        按顺序执行工具调用。

        每个工具开始前检查取消信号：已取消时跳过剩余工具，正在执行的工具不会被打断。
        处理器未声明的工具直接得到失败结果，不会执行。
        """
        executed: list[tuple[ToolCall, ToolResult]] = []
        for call in calls:
            if self._cancel.is_set():
                logger.info(f"Skipping {len(calls) - len(executed)} remaining tools after cancel")
                break
            logger.info(f"Tool call: {call.render()}")
            canonical = self.tools.resolve(call.name)
            if self.tools.has(call.name) and not handler.allows(canonical):
                result = ToolResult.fail(f"tool not allowed for handler '{handler.name}': {call.name}")
            else:
                result = await self.tools.execute(call)
            if not result.success:
                logger.info(f"Tool {call.name} failed: {result.error}")
            executed.append((call, result))
        return executed

    # ------------------------------------------------------------------
    # 命令与会话
    # ------------------------------------------------------------------

    def split_handler_override(self, text: str) -> tuple[str | None, str]:
        """
        拆出 "@filer list files" 这类前缀。名称未注册时原样返回整段文本。
        """
        stripped = text.strip()
        if not stripped.startswith("@"):
            return None, text
        name, _, rest = stripped[1:].partition(" ")
        if name in self.handlers and rest.strip():
            return name, rest.strip()
        return None, text

    async def handle_command(self, text: str) -> str | None:
        """
        处理斜杠命令。不是命令时返回 None。

        异常：
            PersistenceFailure: /new 或 /clear 写数据库失败
        """
        cmd = text.strip().lower()
        if cmd == "/help":
            return HELP_TEXT
        if cmd == "/new":
            async with self._lock:
                if self.summarize_on_new:
                    await self.summarize_session()
                await self.context.new_session()
            return f"{__logo__} New session started."
        if cmd == "/clear":
            async with self._lock:
                await self.context.clear()
            return f"{__logo__} Session history cleared."
        return None

    async def summarize_session(self) -> str | None:
        """
        让模型为当前会话生成一段摘要并保存。失败只记录警告，不影响后续操作。
        """
        session_id = self.context.session_id
        if session_id is None:
            return None
        try:
            recent = await self.context.store.get_messages(session_id, limit=50)
            if not recent:
                return None
            conversation = "\n".join(f"{m.role.upper()}: {m.content}" for m in reversed(recent))
            response = await self.provider.infer(
                messages=[
                    {"role": "system", "content": SUMMARY_PROMPT},
                    {"role": "user", "content": conversation},
                ],
                model=self.model,
                max_tokens=512,
                temperature=0.3,
            )
            summary = response.content.strip()
            if not summary:
                return None
            await self.context.store.update_session_summary(session_id, summary)
        except (InferenceFailure, PersistenceFailure) as e:
            logger.warning(f"Session summary failed for {session_id}: {e}")
            return None
        logger.info(f"Saved summary for session {session_id}")
        return summary

    async def process_direct(self, content: str, handler: str | None = None) -> str:
        """
        直接处理一条输入（CLI 单条消息模式），返回要展示的文本。

        回合级错误被转换为提示文本，不向上抛出。
        """
        outbound = await self._handle(InboundMessage(content=content, handler=handler))
        return outbound.content

    async def _handle(self, msg: InboundMessage) -> OutboundMessage:
        try:
            reply = await self.handle_command(msg.content)
            if reply is not None:
                return OutboundMessage(content=reply, state=STATE_INFO)

            forced, text = (msg.handler, msg.content) if msg.handler else self.split_handler_override(msg.content)
            result = await self.process_turn(text, handler=forced)
        except TurnCancelled:
            return OutboundMessage(content="Request cancelled.", state=STATE_CANCELLED)
        except DeskpilotError as e:
            return OutboundMessage(content=f"Sorry, I encountered an error: {e}", state=STATE_FAILED)

        return OutboundMessage(
            content=result.content,
            handler=result.handler,
            state=STATE_DONE,
            metadata={
                "tools": [c.name for c in result.tool_calls],
                "partial": result.partial,
                "input_tokens": result.input_tokens,
                "output_tokens": result.output_tokens,
            },
        )

    # ------------------------------------------------------------------
    # 总线循环
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        持续消费总线上的入站消息。

        /cancel 立即处理；其他输入在后台任务中执行（回合之间仍由锁串行），
        这样推理进行时前端发来的 /cancel 也能被及时消费。
        """
        if self.bus is None:
            raise RuntimeError("TurnExecutor.run() requires a MessageBus")
        self._running = True
        logger.info("Turn executor loop started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            if msg.content.strip().lower() == "/cancel":
                cancelled = self.cancel()
                await self.bus.publish_outbound(OutboundMessage(
                    content="Cancelling..." if cancelled else "Nothing to cancel.",
                    state=STATE_INFO,
                ))
                continue

            task = asyncio.create_task(self._dispatch(msg))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, msg: InboundMessage) -> None:
        try:
            outbound = await self._handle(msg)
        except Exception as e:
            logger.error(f"Error processing message: {e}")
            outbound = OutboundMessage(content=f"Sorry, I encountered an error: {e}", state=STATE_FAILED)
        await self.bus.publish_outbound(outbound)

    def stop(self) -> None:
        """停止总线循环并取消正在进行的回合。"""
        self._running = False
        self.cancel()
        logger.info("Turn executor loop stopping")

    async def drain(self) -> None:
        """等待 run() 派发的后台回合全部结束（关闭存储之前调用）。"""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
