"""Loader for image config files describing which images to test."""

import asyncio
import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from node_e2e_runner.models.target import ImageConfig

log = logging.getLogger(__name__)


async def load_image_config(path: Path) -> ImageConfig:
    """Load and validate an image config YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is empty, not valid YAML or does not match
            the expected schema

    """
    if not path.is_file():
        raise FileNotFoundError(f"Image config file not found: {path}")

    content = await asyncio.to_thread(path.read_text)

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty image config file: {path}")

    try:
        config = ImageConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid image config schema in {path}: {e}") from e

    log.info("Loaded %d image(s) from %s", len(config.images), path)
    return config
