"""
Static domain hierarchy for reference samples.

Three tiers: domain (코딩) → subcategory (프론트엔드) → technology (React).
Each node carries the number of reference samples it should hold; the tree
drives hierarchical fallback in retrieval and the offline seeding script.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, NamedTuple, Optional, Union


@dataclass(frozen=True)
class Leaf:
    """Terminal node: only a sample count."""
    samples: int


@dataclass(frozen=True)
class Branch:
    """Node with its own general samples plus named children."""
    samples: int
    children: Dict[str, Union["Branch", Leaf]] = field(default_factory=dict)


Node = Union[Branch, Leaf]


TECH_HIERARCHY: Dict[str, Branch] = {
    "코딩": Branch(5, {
        "프론트엔드": Branch(5, {
            "JavaScript": Leaf(10),
            "React": Leaf(10),
            "Next.js": Leaf(10),
            "Vue": Leaf(5),
            "TypeScript": Leaf(10),
        }),
        "백엔드": Branch(5, {
            "Node.js": Leaf(10),
            "Python": Leaf(10),
            "Java": Leaf(5),
        }),
    }),
    "영어": Branch(20, {
        "Part5_문법": Leaf(10),
        "Part7_독해": Leaf(10),
    }),
    "간호사": Branch(10, {
        "NCLEX-RN": Leaf(20),
        "임상간호": Leaf(10),
    }),
    "자격증": Branch(10, {
        "정보보안": Leaf(10),
        "PMP": Leaf(5),
    }),
    "기타": Branch(10),
}


def find_parent_category(tech: str, domain: str) -> Optional[str]:
    """
    Subcategory that lists `tech` as one of its technologies, or None.

    find_parent_category("React", "코딩") → "프론트엔드"
    """
    root = TECH_HIERARCHY.get(domain)
    if root is None:
        return None
    for subcat, node in root.children.items():
        if isinstance(node, Branch) and tech in node.children:
            return subcat
    return None


def _node_total(node: Node) -> int:
    if isinstance(node, Leaf):
        return node.samples
    return node.samples + sum(_node_total(child) for child in node.children.values())


def calculate_total_samples() -> int:
    """Sum of every node's sample count across the whole tree."""
    return sum(_node_total(root) for root in TECH_HIERARCHY.values())


class SeedTargetNode(NamedTuple):
    domain: str
    subdomain: Optional[str]   # None = domain-general samples
    count: int
    sample_file: str           # path of the seed file relative to the samples directory


def iter_seed_targets() -> Iterator[SeedTargetNode]:
    """
    Walk the hierarchy depth-first, one entry per node that holds samples.

    Technology samples are tagged with the technology name as subdomain, so
    a query for "React" can match them directly.
    """
    for domain, root in TECH_HIERARCHY.items():
        yield SeedTargetNode(domain, None, root.samples, f"{domain}/general.json")
        for subcat, node in root.children.items():
            if isinstance(node, Leaf):
                yield SeedTargetNode(domain, subcat, node.samples, f"{domain}/{subcat}.json")
                continue
            yield SeedTargetNode(domain, subcat, node.samples, f"{domain}/{subcat}/general.json")
            for tech, leaf in node.children.items():
                yield SeedTargetNode(domain, tech, _node_total(leaf), f"{domain}/{subcat}/{tech}.json")
