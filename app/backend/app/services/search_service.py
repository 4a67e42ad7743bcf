"""Free-text search restricted to the caller's visible scope."""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.core.auth import RequestUserContext
from app.core.config import get_settings
from app.repositories.tracker_repository import TrackerRepository
from app.services.views import ViewAssembler, serialize_comment, serialize_project


def empty_results() -> dict[str, list[dict[str, object]]]:
    return {"projects": [], "tasks": [], "comments": []}


class SearchService:
    def __init__(self, db: Session) -> None:
        self.repo = TrackerRepository(db)
        self.views = ViewAssembler(self.repo)
        self.settings = get_settings()

    def search(self, *, context: RequestUserContext, query: str) -> dict[str, list[dict[str, object]]]:
        term = (query or "").strip()
        if len(term) < self.settings.search_min_query_length:
            return empty_results()

        scope = self.views.visible_scope(context)
        task_ids = [task.id for task in scope.tasks]

        projects = self.repo.search_projects(scope.project_ids, term)
        tasks = self.repo.search_tasks(task_ids, term)
        comment_rows = self.repo.search_comments(task_ids, term)
        authors = {
            user.id: user
            for user in self.repo.list_users_by_ids({comment.author_id for comment, _ in comment_rows})
        }

        comments = []
        for comment, task in comment_rows:
            payload = serialize_comment(comment, authors.get(comment.author_id))
            payload.update(task_id=task.id, task_title=task.title, project_id=task.project_id)
            comments.append(payload)

        return {
            "projects": [serialize_project(project) for project in projects],
            "tasks": self.views.assemble_tasks(tasks),
            "comments": comments,
        }
