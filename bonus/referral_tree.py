from typing import List, Dict, Any, Optional, Tuple
from collections import defaultdict
from flask import current_app, has_app_context
from extensions import db
from models import User
import logging


logger = logging.getLogger(__name__)

MAX_REFERRAL_DEPTH = 10


def _max_depth(max_depth: Optional[int]) -> int:
    if max_depth is not None:
        return max_depth
    if has_app_context():
        return current_app.config.get("MAX_GENERATION_DEPTH", MAX_REFERRAL_DEPTH)
    return MAX_REFERRAL_DEPTH


class ReferralIndex:
    """
    In-memory adjacency index of the whole sponsor forest (sponsor_id -> children),
    built from a single query. All downward traversal goes through here.
    """

    def __init__(self, rows):
        self.members: Dict[int, Dict[str, Any]] = {}
        self.children: Dict[int, List[int]] = defaultdict(list)
        for row in rows:
            self.members[row.user_id] = {
                "userId": row.user_id,
                "name": row.name,
                "phone": row.phone,
                "avatarUrl": row.avatar_url,
            }
            if row.sponsor_id is not None:
                self.children[row.sponsor_id].append(row.user_id)
        for kids in self.children.values():
            kids.sort()

    @classmethod
    def load(cls) -> "ReferralIndex":
        rows = db.session.execute(
            db.select(User.user_id, User.sponsor_id, User.name, User.phone, User.avatar_url)
        ).all()
        return cls(rows)

    def __contains__(self, user_id) -> bool:
        return user_id in self.members

    def direct_referrals(self, user_id: int) -> List[int]:
        return list(self.children.get(user_id, []))

    def subtree(self, user_id: int, max_depth: int, depth: int = 1, seen=None) -> Tuple[List[Dict], int]:
        """Children of user_id labelled gen{depth}, recursively, plus the descendant count."""
        if depth > max_depth or user_id not in self.members:
            return [], 0
        seen = seen if seen is not None else {user_id}

        nodes = []
        total = 0
        for child_id in self.children.get(user_id, []):
            if child_id in seen:
                logger.error(f"Cycle detected in sponsor forest at user {child_id}")
                continue
            seen.add(child_id)
            nested, nested_count = self.subtree(child_id, max_depth, depth + 1, seen)
            total += 1 + nested_count
            node = dict(self.members[child_id])
            node["generation"] = f"gen{depth}"
            node["referrals"] = nested
            nodes.append(node)
        return nodes, total

    def count(self, user_id: int, max_depth: int) -> int:
        """Descendant count without materialising the tree."""
        total = 0
        frontier = [user_id] if user_id in self.members else []
        seen = set(frontier)
        for _ in range(max_depth):
            next_frontier = []
            for member_id in frontier:
                for child_id in self.children.get(member_id, []):
                    if child_id not in seen:
                        seen.add(child_id)
                        next_frontier.append(child_id)
            total += len(next_frontier)
            frontier = next_frontier
            if not frontier:
                break
        return total

    def layers(self, user_id: int, max_depth: int) -> List[Tuple[int, int]]:
        """(generation, member id) for every descendant, breadth first."""
        result = []
        frontier = [user_id] if user_id in self.members else []
        seen = set(frontier)
        for depth in range(1, max_depth + 1):
            next_frontier = []
            for member_id in frontier:
                for child_id in self.children.get(member_id, []):
                    if child_id not in seen:
                        seen.add(child_id)
                        next_frontier.append(child_id)
                        result.append((depth, child_id))
            frontier = next_frontier
            if not frontier:
                break
        return result


class ReferralTreeHelper:
    """Upward (sponsor chain) and downward (referral tree) resolution, bounded by depth."""

    @staticmethod
    def resolve_ancestry(user_id: int, max_depth: Optional[int] = None, include_self: bool = False) -> List[Tuple[int, int]]:
        """
        Ordered (generation, ancestor id) pairs.
        include_self=False: generation 1 is the sponsor (bonus context).
        include_self=True: generation 1 is the user itself (income distribution context).
        Stops early at a missing user or a null sponsor.
        """
        max_depth = _max_depth(max_depth)
        chain: List[Tuple[int, int]] = []
        user = db.session.get(User, user_id)
        if user is None:
            return chain

        level = 1
        if include_self:
            chain.append((1, user.user_id))
            level = 2

        visited = {user.user_id}
        while level <= max_depth:
            sponsor_id = user.sponsor_id
            if sponsor_id is None or sponsor_id in visited:
                break
            sponsor = db.session.get(User, sponsor_id)
            if sponsor is None:
                logger.warning(f"Sponsor {sponsor_id} of user {user.user_id} is missing; chain truncated")
                break
            chain.append((level, sponsor_id))
            visited.add(sponsor_id)
            user = sponsor
            level += 1
        return chain

    @staticmethod
    def generations(user_id: int, max_depth: Optional[int] = None) -> Dict[str, int]:
        """{'g1': sponsor, 'g2': sponsor's sponsor, ...}"""
        return {f"g{level}": ancestor for level, ancestor in ReferralTreeHelper.resolve_ancestry(user_id, max_depth)}

    @staticmethod
    def ancestor_at(user_id: int, generation: int) -> Optional[int]:
        for level, ancestor in ReferralTreeHelper.resolve_ancestry(user_id, max_depth=generation):
            if level == generation:
                return ancestor
        return None

    @staticmethod
    def build_referral_tree(user_id: int, max_depth: Optional[int] = None, index: Optional[ReferralIndex] = None) -> Dict[str, Any]:
        max_depth = _max_depth(max_depth)
        index = index or ReferralIndex.load()
        tree, total = index.subtree(user_id, max_depth)
        return {"tree": tree, "totalCount": total}

    @staticmethod
    def gen1_branch_sizes(user_id: int, max_depth: Optional[int] = None, index: Optional[ReferralIndex] = None) -> List[Dict[str, Any]]:
        """Each direct referral with the size of its own subtree (the child itself excluded)."""
        max_depth = _max_depth(max_depth)
        index = index or ReferralIndex.load()
        branches = []
        for child_id in index.direct_referrals(user_id):
            member = index.members[child_id]
            branches.append({
                "userId": child_id,
                "name": member["name"],
                "phone": member["phone"],
                # the child sits at depth 1, so its own subtree may go max_depth - 1 further
                "totalReferrals": index.count(child_id, max_depth - 1),
            })
        return branches

    @staticmethod
    def gen1_direct_counts(user_id: int, index: Optional[ReferralIndex] = None) -> List[Dict[str, Any]]:
        index = index or ReferralIndex.load()
        details = []
        for child_id in index.direct_referrals(user_id):
            member = index.members[child_id]
            details.append({
                "userId": child_id,
                "name": member["name"],
                "phone": member["phone"],
                "gen1RefCount": len(index.direct_referrals(child_id)),
            })
        return details

    @staticmethod
    def rank_all(max_depth: Optional[int] = None, index: Optional[ReferralIndex] = None) -> List[Dict[str, Any]]:
        """Every user with their total referral count, ranked descending (ties by user id)."""
        max_depth = _max_depth(max_depth)
        index = index or ReferralIndex.load()
        rows = [
            {
                "userId": member_id,
                "name": member["name"],
                "phone": member["phone"],
                "totalReferrals": index.count(member_id, max_depth),
            }
            for member_id, member in index.members.items()
        ]
        rows.sort(key=lambda r: (-r["totalReferrals"], r["userId"]))
        for position, row in enumerate(rows, start=1):
            row["rank"] = position
        return rows
