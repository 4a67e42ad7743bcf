"""Application service for accounts, teams and guest access."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.auth import (
    APP_ROLE_TO_DB_ROLE,
    AppRole,
    RequestUserContext,
    authenticate,
    generate_temporary_credential,
    hash_credential,
    issue_token,
)
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.policy import (
    can_list_users,
    can_manage_guests,
    can_manage_team_members,
    can_manage_teams,
    can_manage_users,
    can_update_user,
    ensure,
)
from app.db.transaction import unit_of_work
from app.models.entities import RoleType, Team, User
from app.repositories.tracker_repository import TrackerRepository
from app.services.views import serialize_team, serialize_user

logger = get_logger(__name__)

TEAM_ROLES = frozenset({RoleType.TEAM_LEADER, RoleType.EMPLOYEE})
DUPLICATE_EMAIL = "User with this email already exists."


@dataclass(slots=True)
class NotificationPreferencesData:
    on_assignment: bool = True
    on_comment: bool = True
    on_status_change: bool = True
    on_due_date_change: bool = True


@dataclass(slots=True)
class UserCreateData:
    name: str
    email: str
    role: AppRole
    team_id: str | None = None
    project_id: str | None = None


@dataclass(slots=True)
class UserUpdateData:
    """Partial update; ``fields_set`` lists the attributes the caller sent."""

    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    role: AppRole | None = None
    team_id: str | None = None
    project_id: str | None = None
    disabled: bool | None = None
    notification_preferences: NotificationPreferencesData | None = None
    fields_set: frozenset[str] = field(default_factory=frozenset)


@dataclass(slots=True)
class TeamData:
    name: str
    leader_id: str
    member_ids: list[str] = field(default_factory=list)


def _normalize_email(value: str) -> str:
    normalized = (value or "").strip().lower()
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise ValidationError("email must be a valid email address.")
    return normalized


def _required_name(value: str | None, label: str = "name") -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValidationError(f"{label} is required.")
    return stripped


def _team_result(team: Team | None, users: Sequence[User]) -> dict[str, object]:
    return {
        "team": serialize_team(team) if team is not None else None,
        "updated_users": [serialize_user(user) for user in sorted(users, key=lambda u: u.id)],
    }


class AdminService:
    """Account, team membership and guest lifecycle operations."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackerRepository(db)

    # ---------- Authentication ----------
    def login(self, *, email: str, credential: str) -> dict[str, object]:
        user = authenticate(self.db, email=email, credential=credential)
        logger.info("user_authenticated", user_id=user.id)
        return {"user": serialize_user(user), "token": issue_token(user)}

    def get_profile(self, *, context: RequestUserContext) -> dict[str, object]:
        return serialize_user(self._user_or_404(context.user_id))

    def register_organization(self, *, name: str, email: str, credential: str) -> dict[str, object]:
        """Public sign-up: creates the first super admin of an organization."""

        full_name = _required_name(name)
        normalized_email = _normalize_email(email)
        if len(credential or "") < 8:
            raise ValidationError("Password must be at least 8 characters.")
        if self.repo.get_user_by_email(normalized_email) is not None:
            raise ConflictError(DUPLICATE_EMAIL)

        with unit_of_work(self.db, action="organization_registered", conflict_detail=DUPLICATE_EMAIL):
            user = self.repo.add_user(
                User(
                    full_name=full_name,
                    email=normalized_email,
                    credential_hash=hash_credential(credential),
                    role=RoleType.SUPER_ADMIN,
                    created_at=datetime.utcnow(),
                    updated_at=datetime.utcnow(),
                )
            )
        return {"user": serialize_user(user), "token": issue_token(user)}

    # ---------- Users ----------
    def _user_or_404(self, user_id: str) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def _validate_affiliation(self, role: RoleType, team_id: str | None, project_id: str | None) -> None:
        if role == RoleType.GUEST:
            if not project_id:
                raise ValidationError("Guests must be associated with a project.")
            if team_id:
                raise ValidationError("Guests cannot belong to a team.")
            if self.repo.get_project(project_id) is None:
                raise NotFoundError("Project not found.")
            return
        if project_id:
            raise ValidationError("Only guests are scoped to a single project.")
        if team_id:
            if role not in TEAM_ROLES:
                raise ValidationError("Only team leaders and employees can belong to a team.")
            if self.repo.get_team(team_id) is None:
                raise NotFoundError("Team not found.")

    def _insert_user(self, *, name: str, email: str, role: RoleType, team_id: str | None, project_id: str | None) -> User:
        if self.repo.get_user_by_email(email) is not None:
            raise ConflictError(DUPLICATE_EMAIL)
        now = datetime.utcnow()
        with unit_of_work(self.db, action="user_created", conflict_detail=DUPLICATE_EMAIL):
            user = self.repo.add_user(
                User(
                    full_name=name,
                    email=email,
                    # Never returned; the invitation flow lets the user set a real one.
                    credential_hash=hash_credential(generate_temporary_credential()),
                    role=role,
                    team_id=team_id,
                    project_id=project_id,
                    disabled=False,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info("user_invitation_requested", user_id=user.id, role=role.value)
        return user

    def list_users(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        ensure(can_list_users(context), "Not authorized to list users.", caller=context)
        return [serialize_user(user) for user in self.repo.list_users()]

    def list_unassigned_employees(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        ensure(can_list_users(context), "Not authorized to list users.", caller=context)
        return [serialize_user(user) for user in self.repo.list_unassigned_employees()]

    def create_user(self, *, context: RequestUserContext, data: UserCreateData) -> dict[str, object]:
        ensure(can_manage_users(context), "Only a super admin can create users.", caller=context)
        name = _required_name(data.name)
        email = _normalize_email(data.email)
        role = APP_ROLE_TO_DB_ROLE[data.role]
        self._validate_affiliation(role, data.team_id, data.project_id)
        user = self._insert_user(
            name=name,
            email=email,
            role=role,
            team_id=data.team_id,
            project_id=data.project_id,
        )
        return serialize_user(user)

    def update_user(self, *, context: RequestUserContext, user_id: str, data: UserUpdateData) -> dict[str, object]:
        ensure(
            can_update_user(context, user_id),
            "Users can only update their own profile.",
            caller=context,
        )
        user = self._user_or_404(user_id)

        admin_fields = {"role", "team_id", "project_id", "disabled"} & data.fields_set
        if admin_fields and not context.is_super_admin:
            ensure(False, "Only a super admin can change role, team, project or status.", caller=context)
        if data.notification_preferences is not None and user.role == RoleType.GUEST:
            raise ValidationError("Guests cannot change notification preferences.")

        target_role = APP_ROLE_TO_DB_ROLE[data.role] if data.role is not None else user.role
        target_team = data.team_id if "team_id" in data.fields_set else user.team_id
        target_project = data.project_id if "project_id" in data.fields_set else user.project_id
        if target_role != RoleType.GUEST and "project_id" not in data.fields_set:
            target_project = None
        if target_role not in TEAM_ROLES and "team_id" not in data.fields_set:
            target_team = None
        self._validate_affiliation(target_role, target_team, target_project)

        email = user.email
        if data.email is not None:
            email = _normalize_email(data.email)
            other = self.repo.get_user_by_email(email)
            if other is not None and other.id != user.id:
                raise ConflictError(DUPLICATE_EMAIL)

        with unit_of_work(self.db, action="user_updated", conflict_detail=DUPLICATE_EMAIL):
            if data.name is not None:
                user.full_name = _required_name(data.name)
            user.email = email
            if "avatar_url" in data.fields_set:
                user.avatar_url = data.avatar_url
            user.role = target_role
            user.team_id = target_team
            user.project_id = target_project
            if data.disabled is not None:
                user.disabled = data.disabled
            if data.notification_preferences is not None:
                prefs = data.notification_preferences
                user.notify_on_assignment = prefs.on_assignment
                user.notify_on_comment = prefs.on_comment
                user.notify_on_status_change = prefs.on_status_change
                user.notify_on_due_date_change = prefs.on_due_date_change
            user.updated_at = datetime.utcnow()
        return serialize_user(user)

    def delete_user(self, *, context: RequestUserContext, user_id: str) -> dict[str, object]:
        """Soft delete (disable) everyone except guests, who are removed outright."""

        ensure(can_manage_users(context), "Only a super admin can delete users.", caller=context)
        if user_id == context.user_id:
            raise ValidationError("You cannot delete your own account.")
        user = self._user_or_404(user_id)
        payload = serialize_user(user)

        if user.role == RoleType.GUEST:
            with unit_of_work(self.db, action="guest_deleted"):
                self.repo.delete_user(user)
            return payload

        with unit_of_work(self.db, action="user_disabled"):
            user.disabled = True
            user.updated_at = datetime.utcnow()
        return serialize_user(user)

    # ---------- Guests ----------
    def invite_guest(
        self,
        *,
        context: RequestUserContext,
        email: str,
        project_id: str,
        name: str | None = None,
    ) -> dict[str, object]:
        project = self.repo.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        ensure(can_manage_guests(context, project), "Not authorized to invite guests to this project.", caller=context)
        normalized_email = _normalize_email(email)
        user = self._insert_user(
            name=(name or "").strip() or normalized_email,
            email=normalized_email,
            role=RoleType.GUEST,
            team_id=None,
            project_id=project.id,
        )
        return serialize_user(user)

    def revoke_guest(self, *, context: RequestUserContext, guest_id: str) -> dict[str, object]:
        guest = self._user_or_404(guest_id)
        if guest.role != RoleType.GUEST:
            raise ValidationError("Only guest access can be revoked.")
        project = self.repo.get_project(guest.project_id) if guest.project_id else None
        if project is None:
            raise NotFoundError("Project not found.")
        ensure(can_manage_guests(context, project), "Not authorized to revoke guests of this project.", caller=context)
        payload = serialize_user(guest)
        with unit_of_work(self.db, action="guest_revoked"):
            self.repo.delete_user(guest)
        return payload

    # ---------- Teams ----------
    def _team_or_404(self, team_id: str) -> Team:
        team = self.repo.get_team(team_id)
        if team is None:
            raise NotFoundError("Team not found.")
        return team

    def _validate_team_data(self, data: TeamData) -> tuple[str, set[str]]:
        name = _required_name(data.name, "Team name")
        leader = self.repo.get_user(data.leader_id) if data.leader_id else None
        if leader is None:
            raise ValidationError("Team leader is required.")
        if leader.role != RoleType.TEAM_LEADER:
            raise ValidationError("Team leader must have the Team Leader role.")
        member_ids = set(data.member_ids) | {leader.id}
        members = {user.id: user for user in self.repo.list_users_by_ids(member_ids)}
        missing = member_ids - members.keys()
        if missing:
            raise ValidationError(f"Unknown member ids: {', '.join(sorted(missing))}.")
        if any(user.role not in TEAM_ROLES for user in members.values()):
            raise ValidationError("Only team leaders and employees can be team members.")
        return name, member_ids

    def _reconcile_members(self, team_id: str, new_member_ids: set[str]) -> set[str]:
        """Apply the membership set difference and return ids whose team changed."""

        current = {user.id for user in self.repo.list_team_members(team_id)}
        to_add = new_member_ids - current
        to_remove = current - new_member_ids
        self.repo.set_team_for_users(to_remove, None)
        self.repo.set_team_for_users(to_add, team_id)
        return to_add | to_remove

    def create_team(self, *, context: RequestUserContext, data: TeamData) -> dict[str, object]:
        ensure(can_manage_teams(context), "Only a super admin can create teams.", caller=context)
        name, member_ids = self._validate_team_data(data)

        with unit_of_work(self.db, action="team_created"):
            team = self.repo.add_team(Team(name=name, leader_id=data.leader_id, created_at=datetime.utcnow()))
            changed = self._reconcile_members(team.id, member_ids)
        return _team_result(team, self.repo.list_users_by_ids(changed))

    def update_team(self, *, context: RequestUserContext, team_id: str, data: TeamData) -> dict[str, object]:
        ensure(can_manage_teams(context), "Only a super admin can update teams.", caller=context)
        team = self._team_or_404(team_id)
        name, member_ids = self._validate_team_data(data)

        with unit_of_work(self.db, action="team_updated"):
            team.name = name
            team.leader_id = data.leader_id
            changed = self._reconcile_members(team.id, member_ids)
        return _team_result(team, self.repo.list_users_by_ids(changed))

    def delete_team(self, *, context: RequestUserContext, team_id: str) -> dict[str, object]:
        ensure(can_manage_teams(context), "Only a super admin can delete teams.", caller=context)
        team = self._team_or_404(team_id)
        if self.repo.count_team_projects(team.id):
            raise ConflictError("Team still owns projects; reassign or delete them first.")
        member_ids = [user.id for user in self.repo.list_team_members(team.id)]
        payload = serialize_team(team)

        with unit_of_work(self.db, action="team_deleted"):
            self.repo.set_team_for_users(member_ids, None)
            self.repo.delete_team(team)
        return {
            "team": payload,
            "updated_users": [serialize_user(user) for user in self.repo.list_users_by_ids(member_ids)],
        }

    def add_users_to_team(
        self,
        *,
        context: RequestUserContext,
        team_id: str,
        user_ids: Sequence[str],
    ) -> list[dict[str, object]]:
        """Attach unassigned team-eligible users; users already in a team are left alone."""

        if not user_ids:
            raise ValidationError("User IDs array is required.")
        team = self._team_or_404(team_id)
        ensure(
            can_manage_team_members(context, team.id),
            "Not authorized to add members to this team.",
            caller=context,
        )
        candidates = self.repo.list_users_by_ids(set(user_ids))
        eligible = [user.id for user in candidates if user.team_id is None and user.role in TEAM_ROLES]

        with unit_of_work(self.db, action="team_members_added"):
            self.repo.set_team_for_users(eligible, team.id)
        return [serialize_user(user) for user in self.repo.list_users_by_ids(eligible)]

    def remove_user_from_team(
        self,
        *,
        context: RequestUserContext,
        team_id: str,
        user_id: str,
    ) -> dict[str, object]:
        team = self._team_or_404(team_id)
        ensure(
            can_manage_team_members(context, team.id),
            "Not authorized to remove members from this team.",
            caller=context,
        )
        user = self.repo.get_user(user_id)
        if user is None or user.team_id != team.id:
            raise NotFoundError("User not found in the specified team.")

        with unit_of_work(self.db, action="team_member_removed"):
            user.team_id = None
            user.updated_at = datetime.utcnow()
            if team.leader_id == user.id:
                team.leader_id = None
        return serialize_user(user)
