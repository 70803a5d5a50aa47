import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from ..config import TrelloSettings
from ..domain.boards.schemas import BoardPlan, BoardStats, InvitedUser, TeamMember
from ..errors import Err, Ok, Result, UpstreamServiceError
from ..shared.validators import alphanumeric_only, normalize_board_description

logger = logging.getLogger(__name__)

CHECKBOX_PREFIX = re.compile(r"^\s*\[\s?[xX ]?\s?\]\s*")
LABEL_COLOR = "blue"


class BoardCreation(BaseModel):
    """What Trello handed back for a newly created board"""

    board_id: str
    board_url: Optional[str] = None
    board_name: str
    invited_users: list[InvitedUser] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


def generate_board_name(project_id: int, project_title: str, now: Optional[datetime] = None) -> str:
    """ProjectId_AlphanumericTitle_yyyyMMddHHmm, unique per minute"""
    timestamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M")
    return f"{project_id}_{alphanumeric_only(project_title)}_{timestamp}"


def is_product_manager(role_name: Optional[str]) -> bool:
    if not role_name:
        return False
    return "product manager" in role_name.lower() or "pm" in role_name.lower().split()


def _created_id(response: httpx.Response) -> Optional[str]:
    """Id of the object Trello just created, None for an unusable reply"""
    if response.status_code != 200:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return str(data["id"])


def _failure_reason(response: httpx.Response) -> str:
    if response.status_code != 200:
        return f"HTTP {response.status_code}"
    return "unexpected response body"


def _parse_trello_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TrelloBoardClient:
    """Service for interacting with the Trello REST API"""

    def __init__(self, settings: TrelloSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.settings.api_key and self.settings.api_token)

    def _auth(self, **params: Any) -> dict[str, Any]:
        return {**params, "key": self.settings.api_key, "token": self.settings.api_token}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
        )

    async def create_project_board(
        self,
        project_id: int,
        project_title: str,
        project_description: Optional[str],
        team_members: list[TeamMember],
        plan: BoardPlan,
    ) -> Result[BoardCreation]:
        """
        Create a board with one list per sprint and one card per task.

        Only the board itself is essential. Invitations, labels, lists, cards and
        checklists that fail are recorded in ``errors`` and the board is still
        returned.
        """
        if not self.configured:
            logger.error("❌ Trello credentials not configured - cannot create board")
            return Err(UpstreamServiceError("Board provider is not configured"))

        board_name = generate_board_name(project_id, project_title)
        description = normalize_board_description(project_description)
        errors: list[str] = []

        async with self._client() as client:
            try:
                response = await client.post(
                    "/boards",
                    params=self._auth(
                        name=board_name,
                        desc=description,
                        defaultLists="false",
                        prefs_permissionLevel="public",
                    ),
                )
            except httpx.TimeoutException:
                logger.error(f"❌ Trello board creation timed out for project {project_id}")
                return Err(UpstreamServiceError("Board provider timed out"))
            except httpx.HTTPError as e:
                logger.error(f"❌ Trello unreachable: {e}")
                return Err(UpstreamServiceError("Board provider is unreachable"))

            if response.status_code != 200:
                logger.error(f"❌ Trello board creation failed: {response.status_code} {response.text[:300]}")
                return Err(UpstreamServiceError(f"Board provider returned HTTP {response.status_code}"))

            try:
                board = response.json()
            except ValueError:
                return Err(UpstreamServiceError("Board provider returned a non-JSON response"))

            board_id = board.get("id") if isinstance(board, dict) else None
            if not board_id:
                logger.error("❌ Trello board creation response had no board id")
                return Err(UpstreamServiceError("Board provider returned no board id"))

            logger.info(f"✅ Created Trello board {board_id} ({board_name}) for project {project_id}")

            invited_users = await self._invite_members(client, board_id, team_members, errors)
            label_ids = await self._create_labels(client, board_id, team_members, plan, errors)
            list_ids = await self._create_lists(client, board_id, plan, errors)
            await self._create_cards(client, plan, list_ids, label_ids, errors)

        if errors:
            logger.warning(f"⚠️ Board {board_id} created with {len(errors)} non-fatal errors")

        return Ok(
            BoardCreation(
                board_id=board_id,
                board_url=board.get("url") or board.get("shortUrl"),
                board_name=board.get("name") or board_name,
                invited_users=invited_users,
                errors=errors,
            )
        )

    async def _invite_members(
        self, client: httpx.AsyncClient, board_id: str, members: list[TeamMember], errors: list[str]
    ) -> list[InvitedUser]:
        invited = []
        for member in members:
            if self.settings.invite_pm_only and not is_product_manager(member.roleName):
                continue

            name = f"{member.firstName} {member.lastName}"
            try:
                response = await client.put(
                    f"/boards/{board_id}/members",
                    params=self._auth(email=member.email, type="normal", allowBillableGuest="true"),
                )
                ok = response.status_code == 200
                if not ok:
                    errors.append(f"Failed to invite {member.email}: HTTP {response.status_code}")
            except httpx.HTTPError as e:
                ok = False
                errors.append(f"Failed to invite {member.email}: {e}")

            invited.append(InvitedUser(email=member.email, name=name, status="Invited" if ok else "Failed"))
            logger.info(f"📧 Board invitation for {member.email}: {'sent' if ok else 'failed'}")
        return invited

    async def _create_labels(
        self,
        client: httpx.AsyncClient,
        board_id: str,
        members: list[TeamMember],
        plan: BoardPlan,
        errors: list[str],
    ) -> dict[str, str]:
        role_names = []
        for name in [m.roleName for m in members] + [c.roleName for c in plan.cards]:
            if name and name not in role_names:
                role_names.append(name)

        label_ids = {}
        for role_name in role_names:
            try:
                response = await client.post(
                    f"/boards/{board_id}/labels", params=self._auth(name=role_name, color=LABEL_COLOR)
                )
            except httpx.HTTPError as e:
                errors.append(f"Failed to create label '{role_name}': {e}")
                continue

            label_id = _created_id(response)
            if label_id:
                label_ids[role_name] = label_id
            else:
                errors.append(f"Failed to create label '{role_name}': {_failure_reason(response)}")
        return label_ids

    async def _create_lists(
        self, client: httpx.AsyncClient, board_id: str, plan: BoardPlan, errors: list[str]
    ) -> dict[str, str]:
        list_ids = {}
        for board_list in sorted(plan.lists, key=lambda item: item.position):
            try:
                response = await client.post(
                    f"/boards/{board_id}/lists",
                    params=self._auth(name=board_list.name, pos=str(board_list.position)),
                )
            except httpx.HTTPError as e:
                errors.append(f"Failed to create list '{board_list.name}': {e}")
                continue

            list_id = _created_id(response)
            if list_id:
                list_ids[board_list.name] = list_id
            else:
                errors.append(f"Failed to create list '{board_list.name}': {_failure_reason(response)}")
        return list_ids

    async def _create_cards(
        self,
        client: httpx.AsyncClient,
        plan: BoardPlan,
        list_ids: dict[str, str],
        label_ids: dict[str, str],
        errors: list[str],
    ):
        for card in plan.cards:
            list_id = list_ids.get(card.listName)
            if not list_id:
                errors.append(f"List '{card.listName}' not found for card '{card.name}'")
                continue

            params = {"name": card.name, "desc": card.description, "idList": list_id}
            if card.dueDate:
                params["due"] = card.dueDate.isoformat()
            if label_ids.get(card.roleName):
                params["idLabels"] = label_ids[card.roleName]

            try:
                response = await client.post("/cards", params=self._auth(**params))
            except httpx.HTTPError as e:
                errors.append(f"Failed to create card '{card.name}': {e}")
                continue

            card_id = _created_id(response)
            if not card_id:
                errors.append(f"Failed to create card '{card.name}': {_failure_reason(response)}")
                continue

            if card.checklistItems:
                await self._create_checklist(client, card_id, card.name, card.checklistItems, errors)

    async def _create_checklist(
        self, client: httpx.AsyncClient, card_id: str, card_name: str, items: list[str], errors: list[str]
    ):
        try:
            response = await client.post("/checklists", params=self._auth(name="Checklist", idCard=card_id))
        except httpx.HTTPError as e:
            errors.append(f"Failed to create checklist for '{card_name}': {e}")
            return

        checklist_id = _created_id(response)
        if not checklist_id:
            errors.append(f"Failed to create checklist for '{card_name}': {_failure_reason(response)}")
            return

        for item in items:
            text = CHECKBOX_PREFIX.sub("", item).strip()
            if not text:
                continue
            try:
                item_response = await client.post(
                    f"/checklists/{checklist_id}/checkItems", params=self._auth(name=text, pos="bottom")
                )
            except httpx.HTTPError as e:
                errors.append(f"Failed to add checklist item to '{card_name}': {e}")
                continue
            if item_response.status_code != 200:
                errors.append(f"Failed to add checklist item to '{card_name}': HTTP {item_response.status_code}")

    async def get_board_stats(self, board_id: str) -> Result[BoardStats]:
        """Card progress counters for a board"""
        if not self.configured:
            return Err(UpstreamServiceError("Board provider is not configured"))

        async with self._client() as client:
            try:
                response = await client.get(f"/boards/{board_id}", params=self._auth())
            except httpx.HTTPError as e:
                logger.error(f"❌ Trello stats request failed for board {board_id}: {e}")
                return Err(UpstreamServiceError("Board provider is unreachable"))

            if response.status_code != 200:
                return Err(
                    UpstreamServiceError(f"Board '{board_id}' not found or access denied at the board provider")
                )

            try:
                board = response.json()
            except ValueError:
                return Err(UpstreamServiceError("Board provider returned a non-JSON response"))
            if not isinstance(board, dict):
                return Err(UpstreamServiceError("Board provider returned an unexpected board payload"))
            members = await self._get_collection(client, f"/boards/{board_id}/members")
            lists = await self._get_collection(client, f"/boards/{board_id}/lists")
            cards = await self._get_collection(client, f"/boards/{board_id}/cards")

        now = datetime.now(timezone.utc)
        stats = BoardStats(
            boardId=board.get("id", board_id),
            boardName=board.get("name"),
            boardUrl=board.get("url"),
            totalMembers=len(members),
            totalLists=len(lists),
            totalCards=len(cards),
        )

        for card in cards:
            due = _parse_trello_datetime(card.get("due"))
            has_assignee = bool(card.get("idMembers"))

            if card.get("closed"):
                stats.completedCards += 1
            elif due is not None and due < now:
                stats.overdueCards += 1
            elif has_assignee:
                stats.inProgressCards += 1
            else:
                stats.notStartedCards += 1

            if has_assignee:
                stats.assignedCards += 1
            else:
                stats.unassignedCards += 1

            if card.get("dueComplete"):
                stats.dueCompleteCards += 1
            else:
                stats.dueIncompleteCards += 1

        if stats.totalCards:
            stats.completionPercentage = round(stats.completedCards / stats.totalCards * 100, 2)

        return Ok(stats)

    async def _get_collection(self, client: httpx.AsyncClient, path: str) -> list[dict]:
        try:
            response = await client.get(path, params=self._auth())
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Trello request {path} failed: {e}")
            return []
        if response.status_code != 200:
            logger.warning(f"⚠️ Trello request {path} returned {response.status_code}")
            return []
        try:
            data = response.json()
        except ValueError:
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]
