# kcli/api/topics.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from kcli.api.dependencies import get_client
from kcli.domain.services.cluster_service import ClusterService
from kcli.models.topics import BrokerInfo, TopicDetail, TopicSummary
from kcli.services.broker import ClusterClient

router = APIRouter(tags=["topics"])


@router.get("/topics", response_model=List[TopicSummary])
def list_topics(
    q: Optional[str] = Query(None, description="Optional filter substring"),
    client: ClusterClient = Depends(get_client),
):
    return ClusterService(client).list_topics(q.strip() if q else None)


@router.get("/topics/{topic}", response_model=TopicDetail)
def topic_detail(topic: str, client: ClusterClient = Depends(get_client)):
    return ClusterService(client).topic_detail(topic)


@router.get("/brokers", response_model=List[BrokerInfo], tags=["brokers"])
def list_brokers(client: ClusterClient = Depends(get_client)):
    return ClusterService(client).list_brokers()
