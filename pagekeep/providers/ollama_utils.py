"""
Shared Ollama utilities: base URL resolution, model check and auto-pull.
"""

import json
import logging
import os

import requests

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama base URL from an explicit value or OLLAMA_HOST."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def _bare_name(model: str) -> str:
    # Installed names carry a tag, ":latest" when none was given
    return model.split(":")[0] if ":" in model else model


def ollama_installed_models(base_url: str, timeout: float = 5) -> set[str]:
    """Names of locally installed models.

    Raises RuntimeError if Ollama is unreachable.
    """
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(
            f"Ollama is not reachable at {base_url} "
            "(start it with `ollama serve`)"
        ) from e
    return {m["name"] for m in resp.json().get("models", [])}


def ollama_has_model(installed: set[str], model: str) -> bool:
    bare = _bare_name(model)
    candidates = {model, f"{model}:latest", bare, f"{bare}:latest"}
    return bool(candidates & installed)


def ollama_pull(base_url: str, model: str, timeout: float = 600) -> None:
    """Pull a model, logging each new pull status.

    Raises RuntimeError if the pull is refused or reports an error.
    """
    try:
        resp = requests.post(
            f"{base_url}/api/pull",
            json={"name": model, "stream": True},
            stream=True,
            timeout=timeout,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(f"Could not pull '{model}' from {base_url}: {e}") from e

    seen = set()
    with resp:
        for raw in resp.iter_lines():
            if not raw:
                continue
            try:
                event = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if "error" in event:
                raise RuntimeError(f"Pull of '{model}' failed: {event['error']}")
            status = event.get("status")
            # Progress events repeat the status with byte counts
            if status and status not in seen:
                seen.add(status)
                logger.info("ollama pull %s: %s", model, status)


def ollama_ensure_model(base_url: str, model: str) -> None:
    """Make sure ``model`` is installed, pulling it on first use."""
    if ollama_has_model(ollama_installed_models(base_url), model):
        return
    logger.warning("Model %s not installed in Ollama; pulling it now", model)
    ollama_pull(base_url, model)
