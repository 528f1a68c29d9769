"""
Configuration for the Bulletin Gateway node
===========================================

Central configuration for paths, limits, URL prefixes and peer nodes.
Values are read from the environment (and an optional .env file) once at
startup; components receive the settings they need through their
constructors instead of reading this module directly.
"""

import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

TRUTHY_VALUES = {"1", "true", "yes", "on"}


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class GatewaySettings(BaseModel):
    """Submission, search and rendering limits for the gateway."""

    run_dir: str = Field(
        default="run",
        description="Runtime directory holding the search lock files",
    )
    cache_dir: str = Field(
        default="cache",
        description="Directory holding one subdirectory per dataset",
    )
    record_limit_kb: int = Field(
        default=2048,
        ge=1,
        description="Maximum serialized record size in KiB (also caps attachment reads)",
    )
    search_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Age after which a held search lock is considered stale",
    )
    time_error_sigma: float = Field(
        default=60.0,
        ge=0,
        description="Standard deviation (seconds) of the obfuscated post timestamp",
    )
    spam_list_path: str = Field(
        default="file/spam.txt",
        description="File with one spam regular expression per line",
    )
    robot_pattern: str = Field(
        default=r"Google|bot|Yahoo|archiver|Wget|Crawler|Yeti|Baidu",
        description="User-Agent pattern of crawlers that may never trigger a search",
    )
    admin_networks: List[str] = Field(
        default_factory=lambda: ["127.0.0.0/8", "::1/128"],
        description="Networks granted administrator privileges",
    )
    friend_networks: List[str] = Field(
        default_factory=lambda: ["127.0.0.0/8", "::1/128", "192.168.0.0/16", "10.0.0.0/8"],
        description="Networks trusted to create datasets and run searches",
    )
    visitor_networks: List[str] = Field(
        default_factory=lambda: ["0.0.0.0/0", "::/0"],
        description="Networks allowed to use the gateway at all",
    )
    trusted_proxies: List[str] = Field(
        default_factory=lambda: ["127.0.0.1/32", "::1/128"],
        description="Proxies whose forwarding headers are honoured",
    )
    title_limit: int = Field(
        default=30,
        ge=1,
        description="Maximum length of a new thread title",
    )
    gateway_url: str = Field(default="/gateway", description="Path prefix of the gateway application")
    thread_url: str = Field(default="/thread", description="Path prefix of the thread application")
    nodes: List[str] = Field(
        default_factory=list,
        description="Base URLs of peer nodes notified about new records",
    )
    node_name: str = Field(
        default=":8000+server.cgi",
        description="Name this node announces to peers when distributing records",
    )
    queue_size: int = Field(
        default=256,
        ge=1,
        description="Maximum records waiting for distribution before new ones are dropped",
    )
    distribution_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for each peer notification",
    )

    @property
    def record_limit_bytes(self) -> int:
        return self.record_limit_kb << 10


class Config(BaseModel):
    """Process configuration."""

    GATEWAY: GatewaySettings = Field(default_factory=GatewaySettings, description="Gateway settings")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    VERBOSE_STAGES: bool = Field(default=False, description="Trace every submission stage")
    APP_HOST: str = Field(default="0.0.0.0", description="FastAPI host")
    APP_PORT: int = Field(default=8000, description="FastAPI port")
    APP_RELOAD: bool = Field(default=False, description="FastAPI reload mode")

    def __init__(self):
        super().__init__()
        self.load_from_environment()

    def load_from_environment(self):
        """Load configuration from environment variables."""
        gateway = self.GATEWAY

        gateway.run_dir = os.getenv("GATEWAY_RUN_DIR", gateway.run_dir)
        gateway.cache_dir = os.getenv("GATEWAY_CACHE_DIR", gateway.cache_dir)
        gateway.spam_list_path = os.getenv("GATEWAY_SPAM_LIST", gateway.spam_list_path)
        gateway.robot_pattern = os.getenv("GATEWAY_ROBOT_PATTERN", gateway.robot_pattern)
        gateway.gateway_url = os.getenv("GATEWAY_URL", gateway.gateway_url)
        gateway.thread_url = os.getenv("THREAD_URL", gateway.thread_url)
        gateway.node_name = os.getenv("GATEWAY_NODE_NAME", gateway.node_name)

        record_limit_override = os.getenv("GATEWAY_RECORD_LIMIT_KB")
        if record_limit_override:
            try:
                parsed = int(record_limit_override)
                if parsed > 0:
                    gateway.record_limit_kb = parsed
            except ValueError:
                pass

        queue_size_override = os.getenv("GATEWAY_QUEUE_SIZE")
        if queue_size_override:
            try:
                parsed = int(queue_size_override)
                if parsed > 0:
                    gateway.queue_size = parsed
            except ValueError:
                pass

        for env_name, attr in (
            ("GATEWAY_SEARCH_TIMEOUT", "search_timeout_seconds"),
            ("GATEWAY_TIME_ERROR_SIGMA", "time_error_sigma"),
            ("GATEWAY_DISTRIBUTION_TIMEOUT", "distribution_timeout_seconds"),
        ):
            override = os.getenv(env_name)
            if override:
                try:
                    parsed = float(override)
                    if parsed >= 0:
                        setattr(gateway, attr, parsed)
                except ValueError:
                    pass

        for env_name, attr in (
            ("GATEWAY_ADMIN_NETWORKS", "admin_networks"),
            ("GATEWAY_FRIEND_NETWORKS", "friend_networks"),
            ("GATEWAY_VISITOR_NETWORKS", "visitor_networks"),
            ("GATEWAY_TRUSTED_PROXIES", "trusted_proxies"),
            ("GATEWAY_NODES", "nodes"),
        ):
            override = os.getenv(env_name)
            if override is not None:
                setattr(gateway, attr, _split_csv(override))

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", self.LOG_LEVEL)
        self.VERBOSE_STAGES = os.getenv("VERBOSE_STAGES", "false").lower() in TRUTHY_VALUES

        # FastAPI Configuration
        self.APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
        self.APP_PORT = int(os.getenv("APP_PORT", "8000"))
        self.APP_RELOAD = os.getenv("APP_RELOAD", "false").lower() in TRUTHY_VALUES


config = Config()
