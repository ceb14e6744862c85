from fastapi.requests import HTTPConnection

from chatmatch.services.matching_service import MatchingService


def matching_service(connection: HTTPConnection) -> MatchingService:
    """Dependency to get the matching service built at startup."""
    return connection.app.state.matching_service
