"""Projection of canonical relational state into the graph store and the
traversal/aggregate queries answered from it.

All writes are ``MERGE`` statements keyed by relational ids, so replaying
the same snapshot leaves node and relationship counts unchanged.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from quest_core.core.config import settings
from quest_core.core.exceptions import AuthorizationError, ReadOnlyQueryViolation, ValidationError
from quest_core.core.neo4j_client import get_graph_client
from quest_core.schemas.graph import UserGraphSnapshot
from quest_core.services.temporal_graph import months_between
from quest_core.utils.canonical_key import parse_iso_date, role_key, to_datetime
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

WRITE_VERBS = ("CREATE", "DELETE", "SET", "MERGE", "REMOVE")

MAX_PATH_HOPS = 6
DEFAULT_PATH_HOPS = 4

USER_UPSERT = """
MERGE (u:User {id: $userId})
SET u.externalId = $externalId, u.email = $email, u.name = $name
"""

WORK_UPSERT = """
MATCH (u:User {id: $userId})
UNWIND $rows AS row
MERGE (c:Company {id: row.companyId})
SET c.name = row.companyName, c.industry = row.industry
MERGE (u)-[r:WORKED_AT {id: row.id}]->(c)
SET r.title = row.title, r.startDate = row.startDate, r.endDate = row.endDate, r.isCurrent = row.isCurrent
"""

SKILL_UPSERT = """
MATCH (u:User {id: $userId})
UNWIND $rows AS row
MERGE (s:Skill {id: row.skillId})
SET s.name = row.skillName, s.category = row.category
MERGE (u)-[r:HAS_SKILL {id: row.id}]->(s)
SET r.proficiencyLevel = row.proficiencyLevel, r.yearsOfExperience = row.yearsOfExperience,
    r.isShowcase = row.isShowcase
"""

EDUCATION_UPSERT = """
MATCH (u:User {id: $userId})
UNWIND $rows AS row
MERGE (i:Institution {id: row.institutionId})
SET i.name = row.institutionName, i.type = row.institutionType, i.country = row.country
MERGE (u)-[r:STUDIED_AT {id: row.id}]->(i)
SET r.degree = row.degree, r.fieldOfStudy = row.fieldOfStudy, r.startDate = row.startDate, r.endDate = row.endDate
"""

ROLE_UPSERT = """
MATCH (u:User {id: $userId})
UNWIND $rows AS row
MERGE (role:Role {id: row.roleId})
SET role.title = row.title
MERGE (u)-[h:HELD_ROLE {id: row.id}]->(role)
SET h.companyId = row.companyId, h.startDate = row.startDate, h.endDate = row.endDate
"""

NEXT_ROLE_UPSERT = """
UNWIND $rows AS row
MATCH (a:Role {id: row.fromRoleId}), (b:Role {id: row.toRoleId})
MERGE (a)-[n:NEXT_ROLE {id: row.id}]->(b)
SET n.userId = $userId
"""

PRUNE_USER_EDGES = """
MATCH (u:User {id: $userId})-[r:WORKED_AT|HAS_SKILL|STUDIED_AT|HELD_ROLE]->()
WHERE NOT r.id IN $keepIds
DELETE r
"""

PRUNE_NEXT_ROLES = """
MATCH (:Role)-[n:NEXT_ROLE {userId: $userId}]->(:Role)
WHERE NOT n.id IN $keepIds
DELETE n
"""

NETWORK_QUERY = """
MATCH (u:User {id: $userId})
OPTIONAL MATCH (u)-[r:WORKED_AT|HAS_SKILL|STUDIED_AT]->(n)
RETURN u {.*} AS user,
       collect(CASE WHEN n IS NULL THEN NULL ELSE {
           node: n {.*}, labels: labels(n), type: type(r), relationship: r {.*}
       } END) AS connections
"""

COLLEAGUES_QUERY = """
MATCH (u:User {id: $userId})-[mine:WORKED_AT]->(c:Company)<-[theirs:WORKED_AT]-(colleague:User)
WHERE colleague.id <> u.id
  AND coalesce(mine.startDate, '0000-01-01') < coalesce(theirs.endDate, '9999-12-31')
  AND coalesce(theirs.startDate, '0000-01-01') < coalesce(mine.endDate, '9999-12-31')
RETURN colleague.id AS colleagueId, colleague.name AS colleagueName,
       c.id AS companyId, c.name AS sharedCompany, c.industry AS industry,
       mine.startDate AS myStartDate, mine.endDate AS myEndDate,
       theirs.startDate AS theirStartDate, theirs.endDate AS theirEndDate
ORDER BY sharedCompany, colleagueId
LIMIT $limit
"""

# Hop bound is formatted in because Cypher does not accept it as a parameter
CAREER_PATHS_QUERY = """
MATCH (start:Role), (target:Role)
WHERE toLower(start.title) CONTAINS toLower($fromRole)
  AND toLower(target.title) CONTAINS toLower($toRole)
  AND start <> target
MATCH path = (start)-[:NEXT_ROLE*1..{max_hops}]->(target)
WITH [n IN nodes(path) | n.title] AS roles, length(path) AS hops
RETURN roles, hops, count(*) AS frequency
ORDER BY frequency DESC, hops ASC
LIMIT $limit
"""

SKILL_MIGRATION_QUERY = """
MATCH (u:User)-[:HAS_SKILL]->(s:Skill)
WHERE toLower(s.name) = toLower($skill)
MATCH (u)-[w:WORKED_AT]->(c:Company)
WITH u, c, w ORDER BY w.startDate
WITH u, collect({company: c.name, industry: c.industry}) AS jobs
UNWIND range(0, size(jobs) - 2) AS i
WITH u, jobs[i] AS source, jobs[i + 1] AS target
WHERE source.company <> target.company
RETURN source.company AS fromCompany, target.company AS toCompany,
       source.industry AS fromIndustry, target.industry AS toIndustry,
       count(DISTINCT u) AS transitions
ORDER BY transitions DESC, fromCompany, toCompany
LIMIT $limit
"""

STATS_QUERIES = {
    "userCount": "MATCH (n:User) RETURN count(n) AS value",
    "companyCount": "MATCH (n:Company) RETURN count(n) AS value",
    "skillCount": "MATCH (n:Skill) RETURN count(n) AS value",
    "institutionCount": "MATCH (n:Institution) RETURN count(n) AS value",
    "roleCount": "MATCH (n:Role) RETURN count(n) AS value",
    "workRelationships": "MATCH ()-[r:WORKED_AT]->() RETURN count(r) AS value",
    "skillRelationships": "MATCH ()-[r:HAS_SKILL]->() RETURN count(r) AS value",
    "educationRelationships": "MATCH ()-[r:STUDIED_AT]->() RETURN count(r) AS value",
    "roleTransitions": "MATCH ()-[r:NEXT_ROLE]->() RETURN count(r) AS value",
}

SKILL_CATEGORY_QUERY = """
MATCH (u:User {id: $userId})-[:HAS_SKILL]->(s:Skill)
RETURN coalesce(s.category, 'General') AS category, count(s) AS skills
ORDER BY skills DESC, category
"""

TENURE_QUERY = """
MATCH (u:User {id: $userId})-[w:WORKED_AT]->(c:Company)
RETURN c.id AS companyId, w.startDate AS startDate, w.endDate AS endDate, w.isCurrent AS isCurrent
"""

CLEANUP_NEXT_ROLES = """
MATCH (:Role)-[n:NEXT_ROLE {userId: $userId}]->(:Role)
DELETE n
"""

CLEANUP_USER = """
MATCH (u:User {id: $userId})
DETACH DELETE u
"""

NODE_TYPES = {"Company": "company", "Skill": "skill", "Institution": "institution"}


def assert_read_only(query: str) -> None:
    """Reject a query whose text starts with a write verb.

    Raises:
        ReadOnlyQueryViolation: The stripped, upper-cased text begins with
            CREATE, DELETE, SET, MERGE or REMOVE
    """
    head = (query or "").strip().upper()
    for verb in WRITE_VERBS:
        if head.startswith(verb):
            raise ReadOnlyQueryViolation(f"Write operation '{verb}' is not allowed in custom queries")


def _sort_key_for_role(row: Dict[str, Any]):
    return (row["startDate"] is None, row["startDate"] or "", row["id"])


class GraphSyncManager:
    """Idempotent projector and query surface over the graph store."""

    def __init__(self, client=None, environment: Optional[str] = None):
        self.client = client or get_graph_client()
        self.environment = environment or settings.environment

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    # Projection

    @staticmethod
    def _work_rows(snapshot: UserGraphSnapshot) -> List[Dict[str, Any]]:
        return [
            {
                "id": work.id,
                "companyId": work.company_id,
                "companyName": work.company_name,
                "industry": work.industry,
                "title": work.title,
                "startDate": work.start_date,
                "endDate": work.end_date,
                "isCurrent": work.is_current,
            }
            for work in snapshot.work_experiences
        ]

    @staticmethod
    def _role_rows(work_rows: List[Dict[str, Any]]):
        """Role nodes for titled experiences plus NEXT_ROLE edges between consecutive roles."""
        roles = [
            {
                "id": row["id"],
                "roleId": role_key(row["title"]),
                "title": row["title"].strip(),
                "companyId": row["companyId"],
                "startDate": row["startDate"],
                "endDate": row["endDate"],
            }
            for row in work_rows
            if row["title"] and row["title"].strip()
        ]
        roles.sort(key=_sort_key_for_role)

        transitions = []
        for previous, current in zip(roles, roles[1:]):
            if previous["roleId"] == current["roleId"]:
                continue
            transitions.append({
                "id": f"{previous['id']}->{current['id']}",
                "fromRoleId": previous["roleId"],
                "toRoleId": current["roleId"],
            })
        return roles, transitions

    async def sync_user_data(self, snapshot: UserGraphSnapshot) -> Dict[str, int]:
        """Project one user's snapshot; replaying it is a no-op for counts.

        Returns:
            Summed write counters across all statements
        """
        user_id = snapshot.user_id
        work_rows = self._work_rows(snapshot)
        skill_rows = [
            {
                "id": item.id,
                "skillId": item.skill_id,
                "skillName": item.skill_name,
                "category": item.category,
                "proficiencyLevel": item.proficiency_level,
                "yearsOfExperience": item.years_of_experience,
                "isShowcase": item.is_showcase,
            }
            for item in snapshot.skills
        ]
        education_rows = [
            {
                "id": item.id,
                "institutionId": item.institution_id,
                "institutionName": item.institution_name,
                "institutionType": item.institution_type,
                "country": item.country,
                "degree": item.degree,
                "fieldOfStudy": item.field_of_study,
                "startDate": item.start_date,
                "endDate": item.end_date,
            }
            for item in snapshot.education
        ]
        role_rows, transition_rows = self._role_rows(work_rows)

        statements = [
            (USER_UPSERT, {
                "userId": user_id,
                "externalId": snapshot.external_user_id,
                "email": snapshot.email,
                "name": snapshot.name,
            }),
        ]
        for query, rows in (
            (WORK_UPSERT, work_rows),
            (SKILL_UPSERT, skill_rows),
            (EDUCATION_UPSERT, education_rows),
            (ROLE_UPSERT, role_rows),
            (NEXT_ROLE_UPSERT, transition_rows),
        ):
            if rows:
                statements.append((query, {"userId": user_id, "rows": rows}))

        keep_edge_ids = sorted(
            [row["id"] for row in work_rows]
            + [row["id"] for row in skill_rows]
            + [row["id"] for row in education_rows]
        )
        statements.append((PRUNE_USER_EDGES, {"userId": user_id, "keepIds": keep_edge_ids}))
        statements.append((PRUNE_NEXT_ROLES, {"userId": user_id, "keepIds": [t["id"] for t in transition_rows]}))

        totals: Dict[str, int] = {}
        for query, parameters in statements:
            counters = await self.client.execute_write_query(query, parameters) or {}
            for key, value in counters.items():
                totals[key] = totals.get(key, 0) + value

        LOGGER.info(
            "Synced user projection",
            extra={
                "user_id": user_id,
                "work_experiences": len(work_rows),
                "skills": len(skill_rows),
                "education": len(education_rows),
                "roles": len(role_rows),
            },
        )
        return totals

    # Read views

    async def get_user_professional_network(self, user_id: str) -> Dict[str, Any]:
        """The user's node with every employer, skill and institution attached."""
        records = await self.client.run_read_query(NETWORK_QUERY, {"userId": user_id})
        if not records:
            return {"nodes": [], "relationships": []}

        record = records[0]
        user = record.get("user") or {}
        nodes = [{
            "id": user.get("id", user_id),
            "labels": ["User"],
            "properties": {**user, "name": user.get("name") or "You", "type": "user"},
        }]
        relationships = []
        seen = set()
        for connection in record.get("connections") or []:
            node = connection.get("node") or {}
            labels = connection.get("labels") or []
            label = labels[0] if labels else "Node"
            node_id = node.get("id")
            if node_id is None:
                continue
            if node_id not in seen:
                seen.add(node_id)
                nodes.append({
                    "id": node_id,
                    "labels": labels,
                    "properties": {**node, "type": NODE_TYPES.get(label, label.lower())},
                })
            properties = connection.get("relationship") or {}
            relationships.append({
                "id": properties.get("id") or f"{user_id}-{connection.get('type')}-{node_id}",
                "type": connection.get("type"),
                "startNode": user_id,
                "endNode": node_id,
                "properties": properties,
            })
        return {"nodes": nodes, "relationships": relationships}

    async def get_graph_snapshot(self, user_id: str) -> Dict[str, Any]:
        """Full projection for a subscriber catching up after missed deltas."""
        network = await self.get_user_professional_network(user_id)
        counts: Dict[str, int] = {}
        for node in network["nodes"]:
            node_type = node["properties"].get("type", "node")
            counts[node_type] = counts.get(node_type, 0) + 1
        network["stats"] = {
            "nodeCount": len(network["nodes"]),
            "relationshipCount": len(network["relationships"]),
            "companyCount": counts.get("company", 0),
            "skillCount": counts.get("skill", 0),
            "institutionCount": counts.get("institution", 0),
        }
        return network

    async def get_professional_colleagues(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Other users who worked at the same company during an overlapping period."""
        return await self.client.run_read_query(COLLEAGUES_QUERY, {"userId": user_id, "limit": limit})

    async def find_career_paths(
        self,
        from_role: str,
        to_role: str,
        max_hops: int = DEFAULT_PATH_HOPS,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """Observed role sequences leading from ``from_role`` to ``to_role``."""
        if not from_role or not from_role.strip() or not to_role or not to_role.strip():
            raise ValidationError("Both 'from' and 'to' roles are required")
        hops = int(max_hops)
        if not 1 <= hops <= MAX_PATH_HOPS:
            raise ValidationError(f"maxHops must be between 1 and {MAX_PATH_HOPS}")

        query = CAREER_PATHS_QUERY.replace("{max_hops}", str(hops))
        return await self.client.run_read_query(
            query, {"fromRole": from_role.strip(), "toRole": to_role.strip(), "limit": limit}
        )

    async def find_skill_migration_patterns(self, skill: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Company-to-company moves made by users holding ``skill``, most frequent first."""
        if not skill or not skill.strip():
            raise ValidationError("A 'skill' parameter is required")
        return await self.client.run_read_query(SKILL_MIGRATION_QUERY, {"skill": skill.strip(), "limit": limit})

    async def get_database_stats(self) -> Dict[str, int]:
        stats = {}
        for key, query in STATS_QUERIES.items():
            records = await self.client.run_read_query(query)
            stats[key] = int(records[0]["value"]) if records else 0
        return stats

    async def get_career_insights(self, user_id: str) -> Dict[str, Any]:
        categories = await self.client.run_read_query(SKILL_CATEGORY_QUERY, {"userId": user_id})
        tenures = await self.client.run_read_query(TENURE_QUERY, {"userId": user_id})

        now = datetime.now(timezone.utc)
        months = []
        for row in tenures:
            start = to_datetime(parse_iso_date(row.get("startDate")))
            if start is None:
                continue
            end = to_datetime(parse_iso_date(row.get("endDate"))) or now
            months.append(months_between(start, end))

        return {
            "skillsByCategory": {row["category"]: int(row["skills"]) for row in categories},
            "companyCount": len({row.get("companyId") for row in tenures}),
            "averageTenureMonths": round(sum(months) / len(months), 1) if months else 0,
        }

    async def run_custom_query(self, query: str, parameters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a caller-supplied read query.

        The write-verb check runs before anything else touches the query.

        Raises:
            ReadOnlyQueryViolation: The query starts with a write verb
            AuthorizationError: Called in production
        """
        assert_read_only(query)
        if self.is_production:
            raise AuthorizationError("Custom graph queries are disabled in production")
        return await self.client.run_read_query(query.strip(), parameters or {})

    async def cleanup_user_data(self, user_id: str) -> Dict[str, int]:
        """Remove the user's node, edges and role transitions from the projection."""
        if self.is_production:
            raise AuthorizationError("Graph cleanup is disabled in production")
        first = await self.client.execute_write_query(CLEANUP_NEXT_ROLES, {"userId": user_id}) or {}
        second = await self.client.execute_write_query(CLEANUP_USER, {"userId": user_id}) or {}
        LOGGER.info("Removed user projection", extra={"user_id": user_id})
        return {key: first.get(key, 0) + second.get(key, 0) for key in set(first) | set(second)}
