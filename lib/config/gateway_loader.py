import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from lib.utils.validation import ensure, one_of

from .yaml_loader import load_yaml

DEFAULT_CONFIG_PATH = "config/gateway.yaml"
CONFIG_PATH_ENV = "GATEWAY_CONFIG"

GATE_POLICIES = ("permissive", "strict")
API_VARIANTS = ("chat_completions", "text_generation")

DEFAULT_SYSTEM_PROMPT = (
    "You are Jarvis. Be brief, precise, and witty. Address me as Sir."
)

# Per-variant fallbacks for endpoint, model and token budget.
VARIANT_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "chat_completions": {
        "endpoint": "https://router.huggingface.co/v1/chat/completions",
        "model": "deepseek-ai/DeepSeek-V3",
        "max_tokens": 100,
    },
    "text_generation": {
        "endpoint": "https://api-inference.huggingface.co/models/{model}",
        "model": "deepseek-ai/deepseek-coder-6.7b-instruct",
        "max_tokens": 150,
    },
}


@dataclass(frozen=True)
class GateConfig:
    policy: str = "permissive"
    allowed_origins: Tuple[str, ...] = (
        "https://jarvis-997.pages.dev",
        "https://jarvis-997.pages.dev/",
        "null",
    )
    direct_access_agents: Tuple[str, ...] = ("Mozilla", "curl")
    fallback_allow_origin: str = "*"
    cors_on_denial: bool = False


@dataclass(frozen=True)
class UpstreamConfig:
    variant: str = "chat_completions"
    endpoint: str = VARIANT_DEFAULTS["chat_completions"]["endpoint"]
    model: str = VARIANT_DEFAULTS["chat_completions"]["model"]
    max_tokens: int = VARIANT_DEFAULTS["chat_completions"]["max_tokens"]
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    timeout_seconds: Optional[float] = None
    token_env: Tuple[str, ...] = ("HUGGINGFACE_TOKEN", "HF_TOKEN")


@dataclass(frozen=True)
class GatewayConfig:
    """Typed, immutable view over ``gateway.yaml``.

    Built once at startup and shared by every request.  The API token is
    deliberately absent: it is looked up in the environment per query so a
    missing token is reported to the caller instead of failing startup.
    """

    name: str = "J.A.R.V.I.S. Backend"
    version: str = "3.0.0"
    log_level: str = "INFO"
    gate: GateConfig = field(default_factory=GateConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)


def _strings(value: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _gate_config(raw: Dict[str, Any]) -> GateConfig:
    base = GateConfig()
    cors_on_denial = raw.get("cors_on_denial", base.cors_on_denial)
    ensure(isinstance(cors_on_denial, bool), "gate.cors_on_denial must be true or false")
    return GateConfig(
        policy=one_of(raw.get("policy", base.policy), GATE_POLICIES, "gate.policy"),
        allowed_origins=_strings(raw.get("allowed_origins"), base.allowed_origins),
        direct_access_agents=_strings(
            raw.get("direct_access_agents"), base.direct_access_agents
        ),
        fallback_allow_origin=str(
            raw.get("fallback_allow_origin", base.fallback_allow_origin)
        ),
        cors_on_denial=cors_on_denial,
    )


def _upstream_config(raw: Dict[str, Any]) -> UpstreamConfig:
    base = UpstreamConfig()
    variant = one_of(raw.get("variant", base.variant), API_VARIANTS, "upstream.variant")
    defaults = VARIANT_DEFAULTS[variant]

    model = str(raw.get("model") or defaults["model"])
    endpoint = str(raw.get("endpoint") or defaults["endpoint"]).format(model=model)
    max_tokens = int(raw.get("max_tokens", defaults["max_tokens"]))
    temperature = float(raw.get("temperature", base.temperature))
    timeout = raw.get("timeout_seconds", base.timeout_seconds)

    ensure(max_tokens > 0, "upstream.max_tokens must be positive")
    ensure(0.0 <= temperature <= 2.0, "upstream.temperature must be within [0, 2]")
    ensure(
        timeout is None or float(timeout) > 0,
        "upstream.timeout_seconds must be positive or null",
    )
    token_env = _strings(raw.get("token_env"), base.token_env)
    ensure(bool(token_env), "upstream.token_env must name at least one variable")

    return UpstreamConfig(
        variant=variant,
        endpoint=endpoint,
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        system_prompt=str(raw.get("system_prompt") or base.system_prompt),
        timeout_seconds=None if timeout is None else float(timeout),
        token_env=token_env,
    )


def build_gateway_config(raw: Dict[str, Any]) -> GatewayConfig:
    """Return a :class:`GatewayConfig` from an already parsed mapping."""

    raw = raw or {}
    service = raw.get("service", {}) or {}
    base = GatewayConfig()
    return GatewayConfig(
        name=str(service.get("name", base.name)),
        version=str(service.get("version", base.version)),
        log_level=str(service.get("log_level", base.log_level)).upper(),
        gate=_gate_config(raw.get("gate", {}) or {}),
        upstream=_upstream_config(raw.get("upstream", {}) or {}),
    )


def load_gateway_config(path: Optional[str] = None) -> GatewayConfig:
    """Load ``gateway.yaml`` and return a :class:`GatewayConfig`.

    Parameters
    ----------
    path:
        File system path to the YAML configuration file.  Defaults to the
        ``GATEWAY_CONFIG`` environment variable, then ``config/gateway.yaml``.
        When the file does not exist the built-in defaults are used.
    """

    path = path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    raw = load_yaml(path) if Path(path).exists() else {}
    return build_gateway_config(raw)
