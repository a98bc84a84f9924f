"""
URL rewrite strategies.

This module turns an original request URL plus the selected node into the
substitute URL the caller should use instead. Every strategy is a pure
function of its inputs; anything it cannot handle comes back unchanged.
"""

from typing import Callable, Dict, Optional
from urllib.parse import SplitResult, urlsplit, urlunsplit

from noderouter.config import get_logger
from noderouter.models.node import Node, NodeStrategy
from noderouter.utils.helpers import percent_encode

logger = get_logger(__name__)

WEBSOCKET_SCHEMES = {"http": "ws", "https": "wss"}


def _websocket_aware_scheme(original_scheme: str, endpoint_scheme: str) -> str:
    """Keep websocket originals on a websocket scheme."""
    if original_scheme in ("ws", "wss"):
        return WEBSOCKET_SCHEMES.get(endpoint_scheme, endpoint_scheme)
    return endpoint_scheme


def _split_endpoint(endpoint: str) -> Optional[SplitResult]:
    """Parse a node endpoint, accepting bare host names."""
    if "://" not in endpoint:
        endpoint = "//" + endpoint
    parts = urlsplit(endpoint)
    if not parts.netloc:
        return None
    return parts


def _tail(original: SplitResult) -> str:
    """Everything after the authority: path, query and fragment."""
    return urlunsplit(("", "", original.path, original.query, original.fragment))


class RewriteStrategyEngine:
    """
    Applies a node's rewrite strategy to a URL.

    Supported strategies:
    - mirror: swap the host (and scheme, if the endpoint declares one)
    - proxy: wrap the whole URL as a ``target`` query parameter
    - cdn-rewrite: swap the leading ``scheme://host`` for the endpoint,
      including any path prefix the endpoint carries
    """

    def __init__(self, proxy_path: str = "/proxy", proxy_param: str = "target"):
        self.proxy_path = proxy_path
        self.proxy_param = proxy_param
        self._strategies: Dict[str, Callable[[SplitResult, str, Node], Optional[str]]] = {
            NodeStrategy.MIRROR.value: self._apply_mirror,
            NodeStrategy.PROXY.value: self._apply_proxy,
            NodeStrategy.CDN_REWRITE.value: self._apply_cdn_rewrite,
        }

    def supports(self, strategy: str) -> bool:
        return strategy in self._strategies

    def rewrite(self, original_url: str, node: Node) -> str:
        """
        Produce the substitute URL for a request.

        Args:
            original_url: URL the caller was about to request
            node: Selected node

        Returns:
            Substitute URL, or original_url if the strategy is unknown or
            the inputs cannot be rewritten safely
        """
        apply = self._strategies.get(node.strategy)
        if apply is None:
            logger.debug(
                "Unsupported rewrite strategy, passing through",
                extra={"node_id": node.id, "strategy": node.strategy}
            )
            return original_url

        try:
            original = urlsplit(original_url)
            if not original.scheme or not original.netloc:
                return original_url
            rewritten = apply(original, original_url, node)
        except ValueError as e:
            logger.debug(
                "URL could not be rewritten, passing through",
                extra={"node_id": node.id, "url": original_url, "error": str(e)}
            )
            return original_url

        return rewritten if rewritten else original_url

    def _apply_mirror(self, original: SplitResult, original_url: str, node: Node) -> Optional[str]:
        endpoint = _split_endpoint(node.endpoint)
        if endpoint is None:
            return None
        scheme = _websocket_aware_scheme(original.scheme, endpoint.scheme or original.scheme)
        return urlunsplit((scheme, endpoint.netloc, original.path, original.query, original.fragment))

    def _apply_proxy(self, original: SplitResult, original_url: str, node: Node) -> Optional[str]:
        endpoint = _split_endpoint(node.endpoint)
        if endpoint is None or not endpoint.scheme:
            return None
        base = node.endpoint.rstrip("/")
        return f"{base}{self.proxy_path}?{self.proxy_param}={percent_encode(original_url)}"

    def _apply_cdn_rewrite(self, original: SplitResult, original_url: str, node: Node) -> Optional[str]:
        endpoint = _split_endpoint(node.endpoint)
        if endpoint is None or not endpoint.scheme:
            return None
        scheme = _websocket_aware_scheme(original.scheme, endpoint.scheme)
        prefix = urlunsplit((scheme, endpoint.netloc, endpoint.path.rstrip("/"), "", ""))
        return prefix + _tail(original)
