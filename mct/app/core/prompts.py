import logging
import os
from typing import Dict

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "prompts", "prompts.yaml")


class PromptLoader:
    """Named prompt templates from a YAML file, filled with str.format."""

    def __init__(self, prompts_path: str = DEFAULT_PROMPTS_PATH):
        self.prompts_path = os.path.abspath(prompts_path)
        # A missing prompt file is a packaging error, so let it raise.
        with open(self.prompts_path, "r", encoding="utf-8") as f:
            self._templates: Dict[str, str] = yaml.safe_load(f) or {}
        logger.info("Loaded %d prompt template(s) from %s", len(self._templates), self.prompts_path)

    def render(self, key: str, **values: str) -> str:
        if key not in self._templates:
            raise KeyError(f"No prompt template '{key}' in {self.prompts_path}")
        try:
            return self._templates[key].format(**values)
        except KeyError as exc:
            raise KeyError(f"Prompt template '{key}' needs a value for {exc}") from exc


prompts = PromptLoader()
