from fastapi import Depends
from sqlalchemy.orm import Session

from shared.core.database import get_routing_db as get_db
from ...services.routing.routing_facade import RoutingFacade


def get_routing_facade(db: Session = Depends(get_db)) -> RoutingFacade:
    return RoutingFacade(db)
