import logging
import re

from ..prompts import get_title_prompt
from .factory import ProviderRegistry
from .models import LLMProviderType, ProviderConfig

logger = logging.getLogger(__name__)

_TITLE_PREFIX_RE = re.compile(r"^\s*title\s*:\s*", re.IGNORECASE)
_QUOTE_CHARS = "\"'“”‘’`"


def clean_title(raw: str) -> str:
    """Strip a leading 'Title:' label and surrounding quotes from a model reply."""
    title = _TITLE_PREFIX_RE.sub("", raw.strip())
    return title.strip().strip(_QUOTE_CHARS).strip()


class TitleGenerator:
    """Summarizes a conversation's opening question into a short title.

    Only the user's first message goes into the prompt; the answer is left
    out on purpose.
    """

    def __init__(self, registry: ProviderRegistry):
        self._registry = registry

    async def generate_title(
        self,
        config: ProviderConfig,
        provider: LLMProviderType | str,
        user_message: str,
    ) -> str:
        """Generate a title for a conversation.

        Returns:
            A 3-5 word title, or an empty string when none could be generated
            (callers keep the stored title in that case)
        """
        prompt = get_title_prompt(user_message)
        raw = await self._registry.resolve(provider).simple_completion(config, prompt)
        title = clean_title(raw)
        if not title:
            logger.debug("Title generation returned nothing for provider %s", provider)
        return title
