"""노드 탐색(topology) 전략과 엔드포인트 파싱.

seed 엔드포인트 목록을 Elasticsearch 클라이언트의 hosts/노드 선택 옵션으로 변환합니다.

전략:
    - SINGLE_NODE: 항상 첫 번째 엔드포인트만 사용
    - STATIC: 고정된 노드 목록, 클라이언트가 round-robin 분산
    - SNIFFING: seed 노드에서 클러스터 토폴로지를 주기적으로 재탐색
    - STICKY: 마지막으로 성공한 노드를 우선 사용, 죽으면 다음 노드로 전환
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urlsplit

from elastic_transport import NodeConfig, NodeSelector

from docstore.errors import InvalidArgumentError

if TYPE_CHECKING:
    from elastic_transport import BaseNode

    from docstore.config import ClientSettings

_DEFAULT_PORTS = {"http": 80, "https": 443}


class TopologyStrategy(str, Enum):
    SINGLE_NODE = "single_node"
    STATIC = "static"
    SNIFFING = "sniffing"
    STICKY = "sticky"

    @classmethod
    def coerce(cls, value: TopologyStrategy | str) -> TopologyStrategy:
        """Enum 또는 문자열 값을 TopologyStrategy로 변환.

        Raises:
            InvalidArgumentError: 알 수 없는 전략인 경우.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidArgumentError(f"Unknown topology strategy: {value!r}") from None


@dataclass(frozen=True)
class Endpoint:
    """파싱된 seed 엔드포인트."""

    scheme: str
    host: str
    port: int
    path_prefix: str = ""
    username: str | None = None
    password: str | None = None

    @classmethod
    def parse(cls, url: str) -> Endpoint:
        """URL 문자열을 Endpoint로 파싱.

        포트가 없으면 scheme 기본 포트(http=80, https=443)를 사용합니다.
        URL에 포함된 user:password는 basic auth 후보로 보관합니다.
        """
        if url is None or not str(url).strip():
            raise InvalidArgumentError("Endpoint URL cannot be empty.")
        try:
            parts = urlsplit(str(url).strip())
            port = parts.port
        except ValueError as e:
            raise InvalidArgumentError(f"Invalid endpoint URL {url!r}: {e}") from e

        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS or not parts.hostname:
            raise InvalidArgumentError(
                f"Invalid endpoint URL {url!r}: expected http(s)://host[:port]"
            )

        return cls(
            scheme=scheme,
            host=parts.hostname,
            port=port or _DEFAULT_PORTS[scheme],
            path_prefix=parts.path.rstrip("/"),
            username=unquote(parts.username) if parts.username else None,
            password=unquote(parts.password) if parts.password else None,
        )

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.path_prefix}"

    def to_host(self) -> dict[str, Any]:
        """AsyncElasticsearch(hosts=[...])에 넘길 host 매핑 (credential 제외)."""
        host: dict[str, Any] = {"scheme": self.scheme, "host": self.host, "port": self.port}
        if self.path_prefix:
            host["path_prefix"] = self.path_prefix
        return host


class StickySelector(NodeSelector):
    """마지막으로 선택한 노드가 살아 있는 동안 계속 그 노드를 선택.

    노드 풀이 해당 노드를 dead로 표시하면 살아 있는 첫 번째 노드로 전환합니다.
    """

    def __init__(self, node_configs: list[NodeConfig]):
        super().__init__(node_configs)
        self._current: NodeConfig | None = None

    def select(self, nodes: Sequence[BaseNode]) -> BaseNode:
        for node in nodes:
            if node.config == self._current:
                return node
        node = nodes[0]
        self._current = node.config
        return node


def topology_options(
    topology: TopologyStrategy,
    endpoints: Sequence[Endpoint],
    settings: ClientSettings,
) -> dict[str, Any]:
    """전략별 hosts 및 노드 선택/스니핑 옵션 생성."""
    if topology is TopologyStrategy.SINGLE_NODE:
        return {"hosts": [endpoints[0].to_host()]}

    options: dict[str, Any] = {"hosts": [e.to_host() for e in endpoints]}

    if topology is TopologyStrategy.STATIC:
        options["node_selector_class"] = "round_robin"
    elif topology is TopologyStrategy.SNIFFING:
        options["sniff_on_start"] = settings.sniff_on_startup
        options["sniff_on_node_failure"] = settings.sniff_on_connection_fault
        options["min_delay_between_sniffing"] = settings.sniff_lifespan_s
    elif topology is TopologyStrategy.STICKY:
        options["node_selector_class"] = StickySelector

    return options
