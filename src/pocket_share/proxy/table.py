"""Route table for the dynamic proxy."""

from collections.abc import Callable

from ..common.events import EventBus
from ..common.logging import get_logger
from .forwarder import RouteForwarder
from .identifiers import extract_subdomain
from .models import ProxyEvent, Route

logger = get_logger(__name__)

ForwarderFactory = Callable[[int], RouteForwarder]


class RouteTable:
    """In-memory subdomain → route mapping with add/remove/update/query operations.

    Every route has exactly one forwarder, rebuilt whenever the route is
    (re)added so that a changed target port never reuses a stale handle.
    """

    def __init__(
        self,
        events: EventBus | None = None,
        forwarder_factory: ForwarderFactory = RouteForwarder,
    ) -> None:
        self.events = events or EventBus("routes")
        self._forwarder_factory = forwarder_factory
        self._routes: dict[str, Route] = {}
        self._forwarders: dict[str, RouteForwarder] = {}

    def add_route(self, route: Route) -> None:
        """Add or replace the route for ``route.subdomain``.

        Args:
            route: Route to install
        """
        existing = self._routes.get(route.subdomain)
        if existing is not None and existing.share_id != route.share_id:
            logger.warning(
                "Replacing existing route for subdomain",
                subdomain=route.subdomain,
                previous_share=existing.share_id,
                share_id=route.share_id,
            )

        self._routes[route.subdomain] = route
        self._forwarders[route.subdomain] = self._forwarder_factory(route.target_port)

        logger.info(
            "Added proxy route",
            subdomain=route.subdomain,
            target_port=route.target_port,
            active=route.active,
        )
        self.events.emit(ProxyEvent.ROUTE_ADDED, route)

    def remove_route(self, subdomain: str) -> bool:
        """Remove a route and its forwarder.

        Returns:
            True if a route was removed
        """
        route = self._routes.pop(subdomain, None)
        if route is None:
            return False

        self._forwarders.pop(subdomain, None)
        logger.info("Removed proxy route", subdomain=subdomain)
        self.events.emit(ProxyEvent.ROUTE_REMOVED, route)
        return True

    def update_route_status(self, subdomain: str, active: bool) -> bool:
        """Flip only the active flag of an existing route.

        Returns:
            True if the route exists, False otherwise
        """
        route = self._routes.get(subdomain)
        if route is None:
            return False

        updated = route.with_active(active)
        self._routes[subdomain] = updated
        logger.info(
            "Updated route status",
            subdomain=subdomain,
            status="active" if active else "inactive",
        )
        self.events.emit(ProxyEvent.ROUTE_UPDATED, updated)
        return True

    def get_route(self, subdomain: str) -> Route | None:
        return self._routes.get(subdomain)

    def get_forwarder(self, subdomain: str) -> RouteForwarder | None:
        return self._forwarders.get(subdomain)

    def get_all_routes(self) -> list[Route]:
        return list(self._routes.values())

    def get_active_routes(self) -> list[Route]:
        return [route for route in self._routes.values() if route.active]

    def get_route_count(self) -> int:
        return len(self._routes)

    def resolve(self, host: str | None) -> Route | None:
        """Resolve a Host header to an active route.

        Returns:
            The active route for the host's subdomain, or None
        """
        subdomain = extract_subdomain(host)
        if subdomain is None:
            return None

        route = self._routes.get(subdomain)
        if route is None or not route.active:
            return None
        return route

    def clear_all_routes(self) -> None:
        """Remove every route and forwarder."""
        count = len(self._routes)
        self._routes.clear()
        self._forwarders.clear()
        logger.info("Cleared proxy routes", count=count)
        self.events.emit(ProxyEvent.ROUTES_CLEARED, count)

    def __contains__(self, subdomain: object) -> bool:
        return subdomain in self._routes

    def __len__(self) -> int:
        return len(self._routes)
