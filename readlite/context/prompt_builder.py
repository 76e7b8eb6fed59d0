"""Prompt formatting, kept apart from retention policy."""

from typing import Optional

from .message import ContextSnapshot

ROLE_LABELS = {
    "system": "System",
    "user": "User",
    "assistant": "Assistant",
}


class PromptBuilder:
    """Render a ContextSnapshot into one provider-ready prompt.

    Section order is fixed: instructions, then article context, then the
    conversation, then the trailing assistant cue. Insertion order of
    messages never changes it.
    """

    instructions_header = "INSTRUCTIONS:"
    article_header = "ARTICLE CONTEXT:"
    conversation_header = "CONVERSATION:"
    assistant_cue = "Assistant:"

    def build(self, snapshot: ContextSnapshot, system_instructions: Optional[str] = None) -> str:
        prompt = ""

        if system_instructions:
            prompt += f"{self.instructions_header}\n{system_instructions}\n\n"

        if snapshot.article is not None:
            prompt += f"{self.article_header}\n{snapshot.article.content}\n\n"

        conversation = "\n\n".join(
            f"{self.role_label(msg.role)}: {msg.content}"
            for msg in snapshot.messages
        )
        if conversation:
            prompt += f"{self.conversation_header}\n{conversation}\n\n"

        return prompt + self.assistant_cue

    @staticmethod
    def role_label(role: str) -> str:
        return ROLE_LABELS.get(role, role.capitalize())

    @staticmethod
    def build_chat_messages(prompt: str, system_prompt: Optional[str] = None) -> list[dict[str, str]]:
        """Wrap a rendered prompt into the chat messages sent upstream."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages
