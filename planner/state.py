from dataclasses import replace

from .api import STATUS_COMPLETED, Project

MAX_PLACES = 10


def merge_place(project, place):
    """
    Swap an updated place into the project.
    When every place is visited the project is completed; otherwise the
    status stays whatever the server last said.
    """
    places = [place if p.id == place.id else p for p in project.places]
    all_visited = bool(places) and all(p.visited for p in places)
    return replace(
        project,
        places=places,
        status=STATUS_COMPLETED if all_visited else project.status,
    )


def append_place(project, place):
    return replace(project, places=[*project.places, place])


def merge_project(project, updated):
    """Overlay updated project metadata, keeping known places if the update carries none."""
    return replace(updated, places=updated.places or project.places)


class ProjectSnapshot:
    """
    Last known state of the project being viewed, kept in the session.

    After a mutation the merged project is saved as fresh, and the next
    detail render takes it instead of fetching the project again.
    """
    session_key = 'planner.project'

    def __init__(self, session):
        self.session = session

    def get(self, project_id):
        data = self.session.get(self.session_key)
        if not data or data['project']['id'] != project_id:
            return None
        return Project.from_dict(data['project'])

    def save(self, project, fresh=False):
        self.session[self.session_key] = {'project': project.to_dict(), 'fresh': fresh}

    def take_fresh(self, project_id):
        data = self.session.get(self.session_key)
        if not data or not data['fresh'] or data['project']['id'] != project_id:
            return None
        project = Project.from_dict(data['project'])
        self.save(project)
        return project
