# kcli/api/consumer_groups.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from kcli.api.dependencies import get_client
from kcli.domain.services.cluster_service import ClusterService
from kcli.domain.services.lag_aggregator import LagAggregator
from kcli.models.consumers import ConsumerGroupDetail, ConsumerGroupSummary, LagReport
from kcli.services.broker import ClusterClient

router = APIRouter(prefix="/consumer-groups", tags=["consumer-groups"])


@router.get("", response_model=List[ConsumerGroupSummary])
def list_groups(client: ClusterClient = Depends(get_client)):
    return ClusterService(client).list_groups()


@router.get("/{group_id}", response_model=ConsumerGroupDetail)
def describe_group(group_id: str, client: ClusterClient = Depends(get_client)):
    return ClusterService(client).describe_group(group_id)


@router.get("/{group_id}/lag", response_model=LagReport)
def group_lag(
    group_id: str,
    topic: Optional[str] = Query(None, description="Restrict the report to one topic"),
    client: ClusterClient = Depends(get_client),
):
    """
    Per-partition lag, sorted by (topic, partition). `lag` is null when
    unknown; `is_lower_bound` is set whenever the total leaves such
    partitions out.
    """
    return LagAggregator(client).aggregate(group_id, topic=topic)
