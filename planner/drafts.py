from .api import ArtworkResult
from .state import MAX_PLACES


class SelectionError(Exception):
    pass


class ProjectDraft:
    """
    Session-backed state of the "new project" form: metadata typed so far,
    the last artwork search and the artworks picked as places.
    """
    session_key = 'planner.draft'

    def __init__(self, session):
        self.session = session
        data = session.get(self.session_key) or {}
        self.name = data.get('name', '')
        self.description = data.get('description', '')
        self.start_date = data.get('start_date', '')
        self.query = data.get('query', '')
        self.results = [ArtworkResult.from_dict(r) for r in data.get('results', [])]
        self.selected = [ArtworkResult.from_dict(r) for r in data.get('selected', [])]

    @property
    def selected_ids(self):
        return {a.id for a in self.selected}

    @property
    def is_full(self):
        return len(self.selected) >= MAX_PLACES

    def set_details(self, name='', description='', start_date=''):
        self.name = name
        self.description = description
        self.start_date = start_date

    def set_results(self, query, results):
        self.query = query
        self.results = list(results)

    def find_result(self, artwork_id):
        for artwork in self.results:
            if artwork.id == artwork_id:
                return artwork
        return None

    def add(self, artwork):
        """Select an artwork. Returns False if it was already selected."""
        if self.is_full:
            raise SelectionError(f"Maximum {MAX_PLACES} places per project.")
        if artwork.id in self.selected_ids:
            return False
        self.selected.append(artwork)
        return True

    def remove(self, artwork_id):
        self.selected = [a for a in self.selected if a.id != artwork_id]

    def places_payload(self):
        return [{'external_id': a.id} for a in self.selected]

    def save(self):
        self.session[self.session_key] = {
            'name': self.name,
            'description': self.description,
            'start_date': self.start_date,
            'query': self.query,
            'results': [a.to_dict() for a in self.results],
            'selected': [a.to_dict() for a in self.selected],
        }

    def clear(self):
        self.session.pop(self.session_key, None)
        self.set_details()
        self.set_results('', [])
        self.selected = []
