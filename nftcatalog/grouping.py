"""Collapse indexer NFT nodes into one representative entry per serie."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .models import GroupedNFT, NFTNode, SerieMember


@dataclass(slots=True)
class _SerieGroup:
    representative: NFTNode
    members: list[SerieMember] = field(default_factory=list)

    def to_grouped(self) -> GroupedNFT:
        if isinstance(self.representative, GroupedNFT) and len(self.members) == 1:
            return self.representative
        return GroupedNFT(
            **self.representative.model_dump(include=set(NFTNode.model_fields)),
            total_nft=len(self.members),
            total_listed_nft=sum(1 for member in self.members if member.listed),
            serie_data=list(self.members),
        )


def group_nfts(nodes: Iterable[NFTNode]) -> list[GroupedNFT]:
    """Group ``nodes`` by serie id, preserving first-occurrence order.

    The first node of each serie seeds the representative record; later
    members only contribute to the serie aggregates. Nodes without a serie
    each form their own group. Already grouped input is returned unchanged.
    """

    groups: dict[str, _SerieGroup] = {}
    for node in nodes:
        group = groups.get(node.group_key)
        if group is None:
            group = groups[node.group_key] = _SerieGroup(representative=node)
        group.members.append(
            SerieMember(id=node.id, owner=node.owner, listed=node.listed, price=node.price)
        )
    return [group.to_grouped() for group in groups.values()]
