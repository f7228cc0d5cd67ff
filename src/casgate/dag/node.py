"""DAG interior node format.

Multi-chunk objects are stored as raw leaf blocks under one or more layers
of dag-json nodes. A node serialises to canonical JSON (sorted keys, no
whitespace) so identical link lists always produce identical CIDs:

    {"Links": [{"Hash": {"/": "<cid>"}, "Size": <bytes>}, ...], "Size": <bytes>}

``Size`` on a link is the number of content bytes reachable through it;
``Size`` on the node is the sum over its links.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from casgate.cid import CODEC_DAG_JSON, CID, decode, identify
from casgate.errors import InvalidCidError, StoreError


@dataclass(frozen=True)
class Link:
    """A reference from a node to a child block.

    Attributes:
        cid: Child block CID.
        size: Content bytes reachable through the child.
    """

    cid: CID
    size: int


@dataclass(frozen=True)
class DagNode:
    """Interior node of a chunked object."""

    links: tuple[Link, ...]

    @property
    def size(self) -> int:
        return sum(link.size for link in self.links)

    def to_bytes(self) -> bytes:
        """Serialise to canonical dag-json bytes."""
        body: dict[str, Any] = {
            "Links": [{"Hash": {"/": str(link.cid)}, "Size": link.size} for link in self.links],
            "Size": self.size,
        }
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def cid(self) -> CID:
        return identify(self.to_bytes(), codec=CODEC_DAG_JSON)

    @classmethod
    def from_bytes(cls, data: bytes, *, cid: CID | None = None) -> DagNode:
        """Parse a node, failing closed on any structural problem.

        Raises:
            StoreError: If the stored node is not a well-formed DAG node.
        """
        cid_text = str(cid) if cid is not None else None
        try:
            body = json.loads(data.decode("utf-8"))
            links = tuple(
                Link(cid=decode(entry["Hash"]["/"]), size=int(entry["Size"]))
                for entry in body["Links"]
            )
            declared_size = int(body["Size"])
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StoreError("Malformed DAG node", cid=cid_text, cause=e) from e
        except InvalidCidError as e:
            raise StoreError("DAG node links to an invalid CID", cid=cid_text, cause=e) from e

        node = cls(links=links)
        if any(link.size < 0 for link in links) or node.size != declared_size:
            raise StoreError("DAG node size does not match its links", cid=cid_text)
        return node
