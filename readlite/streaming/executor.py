"""Executor end of a stream channel: calls the LLM and relays its text."""

from ..abort_controller import AbortController
from ..context.prompt_builder import PromptBuilder
from ..errors import ReadLiteError, StreamAbortedError
from ..llm.base import BaseLLM, Message
from ..logging import get_logger
from .bridge import Channel
from .messages import Chunk, Complete, Error, StreamRequest
from .parser import StreamProtocolParser


class StreamExecutor:
    """Serves one StreamRequest per channel.

    Bind an instance as the ChannelBridge handler:

        bridge = ChannelBridge(StreamExecutor(OpenAIClient(config)))
    """

    def __init__(self, llm: BaseLLM):
        self.llm = llm

    async def __call__(self, channel: Channel) -> None:
        request = await channel.receive()
        if request is None:
            return
        if not isinstance(request, StreamRequest):
            channel.post(Error(f"Expected a stream request, got {request.type}"))
            return
        await self.run(channel, request)

    async def run(self, channel: Channel, request: StreamRequest) -> None:
        """Stream one request and report Complete or Error on the channel."""
        logger = get_logger()
        abort = AbortController()
        channel.on_disconnect(abort.abort)

        options = request.options
        messages = [
            Message(m["role"], m["content"])
            for m in PromptBuilder.build_chat_messages(request.prompt, options.system_prompt)
        ]
        logger.log_request(channel.session_id, request.prompt, options.to_dict())

        parser = StreamProtocolParser()
        stream = self.llm.stream_bytes(messages, options)
        try:
            async for raw in stream:
                abort.check()
                for text in parser.feed(raw):
                    channel.post(Chunk(text))
                if parser.done:
                    break

            for text in parser.flush():
                channel.post(Chunk(text))
            channel.post(Complete())

        except StreamAbortedError as e:
            # Nobody left to tell
            logger.log_error(str(e), channel.session_id)
        except ReadLiteError as e:
            logger.log_error(str(e), channel.session_id)
            channel.post(Error.from_exception(e))
        finally:
            await stream.aclose()
