"""GraphQL query builders for the blockchain indexer."""

from __future__ import annotations

from typing import Any, Sequence

NFT_FIELDS = """
      id
      owner
      creator
      listed
      serieId
      price
      priceTiime
      marketplaceId
      nftIpfs
      isCapsule
      timestampList
"""

PAGE_FIELDS = """
    totalCount
    pageInfo {
      hasNextPage
      hasPreviousPage
    }
"""


def _render(
    name: str,
    declarations: Sequence[str],
    filters: Sequence[str],
    node_fields: str,
    *,
    paginated: bool,
) -> str:
    arguments = [f"filter: {{ and: [ {' '.join(filters)} ] }}"]
    if paginated:
        declarations = [*declarations, "$limit: Int", "$offset: Int"]
        arguments += ["first: $limit", "offset: $offset"]
    arguments.append("orderBy: ID_ASC")
    header = f"query {name}({', '.join(declarations)})" if declarations else f"query {name}"
    lines = [f"{header} {{", "  nftEntities("]
    lines += [f"    {argument}" for argument in arguments]
    lines.append("  ) {")
    return (
        "\n".join(lines)
        + PAGE_FIELDS
        + f"    nodes {{{node_fields}    }}\n  }}\n}}\n"
    )


def nfts_query(*, include: bool, listed: bool | None = None, paginated: bool = False) -> str:
    """Return a query selecting NFTs inside (``include``) or outside an id set."""

    if include:
        declarations = ["$ids: [String!]!"]
        filters = ["{ id: { in: $ids } }"]
    else:
        declarations = ["$excludeIds: [String!]!"]
        filters = ["{ id: { notIn: $excludeIds } }"]
    filters.append("{ timestampBurn: { isNull: true } }")
    if listed is not None:
        declarations.append("$listed: Int!")
        filters.append("{ listed: { equalTo: $listed } }")
    name = "NFTsFromIds" if include else "NFTsNotInIds"
    return _render(name, declarations, filters, NFT_FIELDS, paginated=paginated)


def serie_query(*, ids_only: bool = False, paginated: bool = False) -> str:
    """Return a query listing the members of one serie."""

    fields = "\n      id\n" if ids_only else NFT_FIELDS
    return _render(
        "NFTsIdsForSerie" if ids_only else "NFTsForSerie",
        ["$serieId: String!"],
        ["{ serieId: { equalTo: $serieId } }", "{ timestampBurn: { isNull: true } }"],
        fields,
        paginated=paginated,
    )


def variables(
    *,
    ids: Sequence[str] | None = None,
    exclude_ids: Sequence[str] | None = None,
    listed: bool | None = None,
    limit: int | None = None,
    offset: int | None = None,
    serie_id: str | None = None,
) -> dict[str, Any]:
    """Build the variables payload matching the queries above."""

    payload: dict[str, Any] = {}
    if ids is not None:
        payload["ids"] = list(ids)
    if exclude_ids is not None:
        payload["excludeIds"] = list(exclude_ids)
    if listed is not None:
        payload["listed"] = 1 if listed else 0
    if limit is not None:
        payload["limit"] = limit
        payload["offset"] = offset or 0
    if serie_id is not None:
        payload["serieId"] = serie_id
    return payload
