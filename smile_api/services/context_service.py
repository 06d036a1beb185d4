from typing import List, Sequence

from smile_api.models import MessageRole


def build_context(system_prompt: str, history: Sequence[dict]) -> List[dict]:
    """System prompt first, then history in the order given."""
    messages = [{"role": MessageRole.SYSTEM.value, "content": system_prompt}]
    messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
    return messages
