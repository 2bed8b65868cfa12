"""
Utility functions for the document RAG agent
"""

import copy
import hashlib
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """Load configuration from YAML file."""
    try:
        with open(config_path, 'r') as file:
            config = yaml.safe_load(file)
        return config or {}
    except FileNotFoundError:
        logging.warning(f"Configuration file not found: {config_path}, using defaults")
        return {}
    except yaml.YAMLError as e:
        logging.error(f"Error parsing YAML configuration: {e}")
        return {}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def setup_logging(config: Dict[str, Any]) -> None:
    """Setup logging configuration."""
    log_config = config.get('logging', {})
    level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    format_str = log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_file = log_config.get('file')
    if log_file:
        create_directories([str(Path(log_file).parent)])
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=format_str, handlers=handlers)


def create_directories(directories: List[str]) -> None:
    """Create directories if they don't exist."""
    for directory in directories:
        Path(directory).mkdir(parents=True, exist_ok=True)


def get_file_hash(file_path: str) -> str:
    """Generate MD5 hash of a file."""
    hash_md5 = hashlib.md5()
    try:
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()
    except FileNotFoundError:
        return ""


def validate_file_type(file_path: str, allowed_extensions: List[str]) -> bool:
    """Validate if file type is allowed."""
    file_extension = Path(file_path).suffix.lower().lstrip('.')
    return file_extension in [ext.lower() for ext in allowed_extensions]


def clean_text(text: str) -> str:
    """
    Normalize extracted text.

    Collapses runs of spaces and tabs, trims every line and keeps at most one
    blank line between paragraphs so paragraph breaks survive chunking.
    """
    if not text:
        return ""

    text = text.replace('\r\n', '\n').replace('\r', '\n').replace('\x00', '')
    lines = [re.sub(r'[ \t\f\v]+', ' ', line).strip() for line in text.split('\n')]
    text = '\n'.join(lines)
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()


def extract_json_from_text(text: str) -> Optional[Dict[str, Any]]:
    """
    Robustly extracts the first valid JSON object from a string.
    It can handle JSON embedded within markdown code blocks or plain text.
    """
    if not isinstance(text, str):
        return None

    match = re.search(r'```(?:json)?\s*(\{.*?\})\s*```', text, re.DOTALL)
    if match:
        json_str = match.group(1)
    else:
        first_brace = text.find('{')
        if first_brace == -1:
            logging.debug("No JSON object found in text.")
            return None
        json_str = text[first_brace:]

    try:
        # Trailing commas are a common model artifact
        cleaned_json_str = re.sub(r',\s*([\}\]])', r'\1', json_str)
        return json.loads(cleaned_json_str)
    except json.JSONDecodeError:
        open_braces = 0
        end_index = -1
        for i, char in enumerate(json_str):
            if char == '{':
                open_braces += 1
            elif char == '}':
                open_braces -= 1
            if open_braces == 0 and i > 0:
                end_index = i + 1
                break

        if end_index != -1:
            potential_json = json_str[:end_index]
            try:
                return json.loads(potential_json)
            except json.JSONDecodeError as e:
                logging.error(f"Failed to decode JSON substring: {e}")
                logging.debug(f"Invalid JSON string: {potential_json}")
                return None

    logging.error("Could not extract a valid JSON object from the provided text.")
    return None


class Timer:
    """Simple timer context manager."""

    def __init__(self, description: str = "Operation"):
        self.description = description
        self.start_time = None
        self.elapsed = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed = time.perf_counter() - self.start_time
        logging.info(f"{self.description} completed in {self.elapsed:.2f} seconds")
