import asyncio
import codecs
import logging
from typing import Any, Callable, Optional

from ..cancellation import CancellationToken, check, run_cancellable
from ..config import settings
from ..models.extract import ImageData
from ..models.summarizer import ChatMessage, ResolvedConfig
from .base import ChunkRecorder, OnChunk, ProviderError, rewrite_prompt

logger = logging.getLogger(__name__)

PROMPT_SEPARATOR = "\n\n---\n\n"
STDERR_TAIL_CHARS = 200
VERSION_PROBE_TIMEOUT = 5.0
READ_SIZE = 4096

Spawn = Callable[..., Any]


def combine(system_prompt: str, body: str) -> str:
    return f"{system_prompt}{PROMPT_SEPARATOR}{body}"


def with_image_path(user_prompt: str, image: Optional[ImageData]) -> str:
    if image is None or not image.file_path:
        return user_prompt
    return (
        f"Please read the image at this path: {image.file_path}\n\n"
        f"Then follow these instructions:\n\n{user_prompt}"
    )


def render_conversation(messages: list[ChatMessage]) -> str:
    turns = [f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in messages]
    return "\n\n".join(turns) + "\n\nAssistant:"


class CliProvider:
    """Runs a locally installed agent CLI, prompt on stdin, answer on stdout."""

    def __init__(
        self,
        name: str,
        binary: str,
        args: Callable[[str], list[str]],
        *,
        label: str,
        install_hint: str,
        timeout: Optional[float] = None,
        spawn: Optional[Spawn] = None,
    ):
        self.name = name
        self.binary = binary
        self._args = args
        self._label = label
        self._install_hint = install_hint
        self._timeout = timeout
        self._spawn = spawn or asyncio.create_subprocess_exec

    @property
    def timeout(self) -> float:
        return settings.cli_timeout_seconds if self._timeout is None else self._timeout

    async def is_available(self) -> bool:
        try:
            proc = await self._spawn(
                self.binary,
                "--version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            return False
        try:
            return await asyncio.wait_for(proc.wait(), VERSION_PROBE_TIMEOUT) == 0
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return False

    async def _pump(self, proc: Any, prompt: str, emit: ChunkRecorder) -> str:
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        try:
            try:
                proc.stdin.write(prompt.encode("utf-8"))
                await proc.stdin.drain()
                proc.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("%s closed stdin early", self.binary)

            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                data = await proc.stdout.read(READ_SIZE)
                if not data:
                    break
                emit(decoder.decode(data))
            emit(decoder.decode(b"", final=True))

            stderr = (await stderr_task).decode("utf-8", errors="replace")
            code = await proc.wait()
        finally:
            stderr_task.cancel()

        if code != 0:
            raise ProviderError(
                f"{self._label} CLI exited with code {code}: {stderr[-STDERR_TAIL_CHARS:]}",
                "UNKNOWN",
                self.name,
            )
        return emit.text

    async def run(
        self,
        prompt: str,
        model: str,
        on_chunk: Optional[OnChunk] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        check(token)
        return await run_cancellable(self._run(prompt, model, ChunkRecorder(on_chunk)), token)

    async def _run(self, prompt: str, model: str, emit: ChunkRecorder) -> str:
        try:
            proc = await self._spawn(
                self.binary,
                *self._args(model),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ProviderError(
                f"{self._label} CLI not found. Install it with: {self._install_hint}",
                "NOT_FOUND",
                self.name,
            ) from exc
        except OSError as exc:
            raise ProviderError(f"CLI error: {exc}", "UNKNOWN", self.name) from exc

        try:
            return await asyncio.wait_for(self._pump(proc, prompt, emit), self.timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"{self._label} CLI timed out after {self.timeout:g}s.", "TIMEOUT", self.name
            ) from exc
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

    async def summarize(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        user_prompt: str,
        on_chunk: OnChunk,
        image: Optional[ImageData] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        prompt = combine(system_prompt, with_image_path(user_prompt, image))
        return await self.run(prompt, config.model, on_chunk, token)

    async def rewrite(self, markdown: str, config: ResolvedConfig, system_prompt: str) -> str:
        text = await self.run(combine(system_prompt, rewrite_prompt(markdown)), config.model)
        return text or markdown

    async def chat(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        messages: list[ChatMessage],
        on_chunk: OnChunk,
    ) -> str:
        prompt = combine(system_prompt, render_conversation(messages))
        return await self.run(prompt, config.model, on_chunk)


def claude_code_provider(**kwargs) -> CliProvider:
    return CliProvider(
        "claude-code",
        "claude",
        lambda model: ["-p", "--model", model],
        label="Claude",
        install_hint="npm install -g @anthropic-ai/claude-code",
        **kwargs,
    )


def codex_provider(**kwargs) -> CliProvider:
    return CliProvider(
        "codex",
        "codex",
        lambda model: ["exec", "--model", model, "-"],
        label="Codex",
        install_hint="npm install -g @openai/codex",
        **kwargs,
    )
