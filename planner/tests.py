from unittest.mock import Mock, patch

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from . import api
from .api import (
    ApiError,
    ArtworkResult,
    ArtworkSearchResponse,
    PaginatedProjects,
    Place,
    Project,
    ProjectListItem,
)
from .drafts import ProjectDraft, SelectionError
from .forms import ProjectFilterForm, ProjectForm
from .state import ProjectSnapshot, append_place, merge_place, merge_project

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

PLACE_DATA = {
    'id': 3,
    'project_id': 5,
    'external_id': 27992,
    'title': 'A Sunday on La Grande Jatte',
    'artist_display': 'Georges Seurat',
    'place_of_origin': 'France',
    'image_id': 'abc123',
    'notes': None,
    'visited': False,
    'created_at': '2025-01-01T10:00:00',
    'updated_at': '2025-01-01T10:00:00',
}

PROJECT_DATA = {
    'id': 5,
    'name': 'Art Tour',
    'description': 'Museum tour',
    'start_date': '2025-06-01',
    'status': 'active',
    'created_at': '2025-01-01T10:00:00',
    'updated_at': '2025-01-01T10:00:00',
    'places': [PLACE_DATA],
}


def mock_response(status_code=200, json_data=None):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


def make_place(pk, visited=False, external_id=None, project_id=5, notes=None):
    return Place(
        id=pk,
        project_id=project_id,
        external_id=external_id if external_id is not None else 1000 + pk,
        title=f'Art {pk}',
        notes=notes,
        visited=visited,
    )


def make_project(places=(), status='active', pk=5, name='Art Tour'):
    return Project(id=pk, name=name, status=status, places=list(places))


def make_artwork(pk, title=None):
    return ArtworkResult(id=pk, title=title or f'Artwork {pk}', thumbnail=f'https://img/{pk}.jpg')


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@override_settings(TRAVEL_API_URL='http://backend.test/', TRAVEL_API_TIMEOUT=5)
class ApiClientTests(SimpleTestCase):
    """Tests for the typed wrapper around the travel API."""

    def setUp(self):
        cache.clear()

    @patch('planner.api.requests.request')
    def test_list_projects_without_status(self, mock_request):
        mock_request.return_value = mock_response(json_data={
            'items': [{'id': 1, 'name': 'P1', 'status': 'active', 'place_count': 2}],
            'total': 1, 'page': 1, 'limit': 10, 'pages': 1,
        })
        data = api.list_projects()

        args, kwargs = mock_request.call_args
        self.assertEqual(args, ('GET', 'http://backend.test/api/projects'))
        self.assertEqual(kwargs['params'], {'page': 1, 'limit': 10})
        self.assertEqual(kwargs['headers'], {'Content-Type': 'application/json'})
        self.assertEqual(kwargs['timeout'], 5)
        self.assertEqual(data.items[0].place_count, 2)
        self.assertEqual(data.pages, 1)

    @patch('planner.api.requests.request')
    def test_list_projects_with_status(self, mock_request):
        mock_request.return_value = mock_response(json_data={'items': [], 'total': 0, 'page': 2, 'limit': 10, 'pages': 0})
        api.list_projects(page=2, status='completed')
        self.assertEqual(mock_request.call_args[1]['params'], {'page': 2, 'limit': 10, 'status': 'completed'})

    @patch('planner.api.requests.request')
    def test_get_project_parses_places(self, mock_request):
        mock_request.return_value = mock_response(json_data=PROJECT_DATA)
        project = api.get_project(5)
        self.assertEqual(mock_request.call_args[0], ('GET', 'http://backend.test/api/projects/5'))
        self.assertEqual(project.name, 'Art Tour')
        self.assertEqual(project.places[0].external_id, 27992)
        self.assertEqual(project.places[0].image_url,
                         'https://www.artic.edu/iiif/2/abc123/full/300,/0/default.jpg')

    @patch('planner.api.requests.request')
    def test_create_project_omits_empty_fields(self, mock_request):
        mock_request.return_value = mock_response(201, PROJECT_DATA)
        api.create_project('Art Tour', places=[{'external_id': 27992}, {'external_id': 1, 'notes': 'first'}])
        self.assertEqual(mock_request.call_args[0], ('POST', 'http://backend.test/api/projects'))
        self.assertEqual(mock_request.call_args[1]['json'], {
            'name': 'Art Tour',
            'places': [{'external_id': 27992}, {'external_id': 1, 'notes': 'first'}],
        })

    @patch('planner.api.requests.request')
    def test_update_project_uses_put(self, mock_request):
        mock_request.return_value = mock_response(json_data=PROJECT_DATA)
        api.update_project(5, name='Renamed', start_date='2025-07-01')
        self.assertEqual(mock_request.call_args[0], ('PUT', 'http://backend.test/api/projects/5'))
        self.assertEqual(mock_request.call_args[1]['json'], {'name': 'Renamed', 'start_date': '2025-07-01'})

    @patch('planner.api.requests.request')
    def test_delete_project_no_content(self, mock_request):
        mock_request.return_value = mock_response(204)
        self.assertIsNone(api.delete_project(5))
        self.assertEqual(mock_request.call_args[0], ('DELETE', 'http://backend.test/api/projects/5'))

    @patch('planner.api.requests.request')
    def test_add_place(self, mock_request):
        mock_request.return_value = mock_response(201, PLACE_DATA)
        place = api.add_place(5, 27992)
        self.assertEqual(mock_request.call_args[0], ('POST', 'http://backend.test/api/projects/5/places'))
        self.assertEqual(mock_request.call_args[1]['json'], {'external_id': 27992})
        self.assertEqual(place.title, 'A Sunday on La Grande Jatte')

    @patch('planner.api.requests.request')
    def test_update_place_sends_only_given_fields(self, mock_request):
        mock_request.return_value = mock_response(json_data=dict(PLACE_DATA, visited=True))
        place = api.update_place(5, 3, visited=True)
        self.assertEqual(mock_request.call_args[0], ('PATCH', 'http://backend.test/api/projects/5/places/3'))
        self.assertEqual(mock_request.call_args[1]['json'], {'visited': True})
        self.assertTrue(place.visited)

    @patch('planner.api.requests.request')
    def test_update_place_keeps_empty_notes(self, mock_request):
        """Clearing notes sends an empty string, not nothing."""
        mock_request.return_value = mock_response(json_data=PLACE_DATA)
        api.update_place(5, 3, notes='')
        self.assertEqual(mock_request.call_args[1]['json'], {'notes': ''})

    @patch('planner.api.requests.request')
    def test_error_uses_detail(self, mock_request):
        mock_request.return_value = mock_response(404, {'detail': 'Project not found'})
        with self.assertRaises(ApiError) as ctx:
            api.get_project(99)
        self.assertEqual(ctx.exception.message, 'Project not found')
        self.assertEqual(ctx.exception.status, 404)

    @patch('planner.api.requests.request')
    def test_error_uses_validation_detail_list(self, mock_request):
        mock_request.return_value = mock_response(422, {'detail': [{'loc': ['body', 'name'], 'msg': 'field required'}]})
        with self.assertRaises(ApiError) as ctx:
            api.create_project('')
        self.assertEqual(ctx.exception.message, 'field required')

    @patch('planner.api.requests.request')
    def test_error_uses_error_key(self, mock_request):
        mock_request.return_value = mock_response(400, {'error': 'Cannot delete project with visited places.'})
        with self.assertRaises(ApiError) as ctx:
            api.delete_project(5)
        self.assertEqual(ctx.exception.message, 'Cannot delete project with visited places.')

    @patch('planner.api.requests.request')
    def test_error_uses_first_field_error(self, mock_request):
        mock_request.return_value = mock_response(400, {'places': ['A project can have a maximum of 10 places.']})
        with self.assertRaises(ApiError) as ctx:
            api.create_project('Big Trip')
        self.assertEqual(ctx.exception.message, 'places: A project can have a maximum of 10 places.')

    @patch('planner.api.requests.request')
    def test_error_without_json_body(self, mock_request):
        mock_request.return_value = mock_response(500)
        with self.assertRaises(ApiError) as ctx:
            api.list_projects()
        self.assertEqual(ctx.exception.message, 'Request failed: 500')
        self.assertEqual(ctx.exception.status, 500)

    @patch('planner.api.requests.request', side_effect=requests.ConnectionError('refused'))
    def test_connection_error(self, _mock):
        with self.assertRaises(ApiError) as ctx:
            api.list_projects()
        self.assertIsNone(ctx.exception.status)

    @patch('planner.api.requests.request')
    def test_search_artworks_is_cached(self, mock_request):
        mock_request.return_value = mock_response(json_data={
            'results': [{'id': 1, 'title': 'Water Lilies', 'thumbnail': None}],
            'total': 1,
            'page': 1,
        })
        first = api.search_artworks('monet')
        second = api.search_artworks('monet')

        self.assertEqual(mock_request.call_count, 1)
        self.assertEqual(mock_request.call_args[0], ('GET', 'http://backend.test/api/artworks/search'))
        self.assertEqual(mock_request.call_args[1]['params'], {'q': 'monet', 'page': 1, 'limit': 10})
        self.assertEqual(first, second)
        self.assertEqual(second.results[0].title, 'Water Lilies')

    @patch('planner.api.requests.request')
    def test_search_artworks_errors_are_not_cached(self, mock_request):
        mock_request.side_effect = [
            mock_response(503, {'detail': 'Catalog unavailable'}),
            mock_response(json_data={'results': [], 'total': 0, 'page': 1}),
        ]
        with self.assertRaises(ApiError):
            api.search_artworks('monet')
        self.assertEqual(api.search_artworks('monet').total, 0)

    @patch('planner.api.requests.request')
    def test_success_without_json_body(self, mock_request):
        """An HTML page with a 200 status is reported, not raised as ValueError."""
        mock_request.return_value = mock_response(200)
        with self.assertRaises(ApiError) as ctx:
            api.list_projects()
        self.assertEqual(ctx.exception.message, 'Invalid response from the travel API.')
        self.assertEqual(ctx.exception.status, 200)

    @patch('planner.api.requests.request')
    def test_malformed_record(self, mock_request):
        mock_request.return_value = mock_response(json_data={'name': 'No id'})
        with self.assertRaisesMessage(ApiError, 'Invalid response from the travel API.'):
            api.get_project(5)

    @patch('planner.api.requests.request')
    def test_malformed_place_in_list(self, mock_request):
        mock_request.return_value = mock_response(json_data=['not', 'a', 'page'])
        with self.assertRaises(ApiError):
            api.list_projects()

    @patch('planner.api.requests.request')
    def test_malformed_search_not_cached(self, mock_request):
        mock_request.side_effect = [
            mock_response(json_data={'results': [{'title': 'No id'}], 'total': 1, 'page': 1}),
            mock_response(json_data={'results': [], 'total': 0, 'page': 1}),
        ]
        with self.assertRaises(ApiError):
            api.search_artworks('monet')
        self.assertEqual(api.search_artworks('monet').total, 0)

    def test_image_url(self):
        self.assertIsNone(api.image_url(None))
        self.assertEqual(api.image_url('xyz', 843), 'https://www.artic.edu/iiif/2/xyz/full/843,/0/default.jpg')


# ---------------------------------------------------------------------------
# Local state merging
# ---------------------------------------------------------------------------

class StateMergeTests(SimpleTestCase):

    def test_project_completed_when_all_places_visited(self):
        project = make_project([make_place(1, visited=True), make_place(2)])
        merged = merge_place(project, make_place(2, visited=True))
        self.assertEqual(merged.status, 'completed')
        self.assertTrue(all(p.visited for p in merged.places))

    def test_project_status_kept_if_some_unvisited(self):
        project = make_project([make_place(1), make_place(2)])
        merged = merge_place(project, make_place(1, visited=True))
        self.assertEqual(merged.status, 'active')

    def test_completed_status_not_reverted_locally(self):
        """Un-visiting a place leaves the status to the server."""
        project = make_project([make_place(1, visited=True)], status='completed')
        merged = merge_place(project, make_place(1, visited=False))
        self.assertEqual(merged.status, 'completed')

    def test_merge_place_keeps_order_and_input_untouched(self):
        project = make_project([make_place(1), make_place(2), make_place(3)])
        merged = merge_place(project, make_place(2, notes='Beautiful!'))
        self.assertEqual([p.id for p in merged.places], [1, 2, 3])
        self.assertEqual(merged.places[1].notes, 'Beautiful!')
        self.assertIsNone(project.places[1].notes)

    def test_append_place(self):
        project = make_project([make_place(1)])
        self.assertEqual([p.id for p in append_place(project, make_place(2)).places], [1, 2])

    def test_merge_project_keeps_places_when_update_has_none(self):
        project = make_project([make_place(1)])
        merged = merge_project(project, make_project(name='Renamed'))
        self.assertEqual(merged.name, 'Renamed')
        self.assertEqual(len(merged.places), 1)


class ProjectSnapshotTests(SimpleTestCase):

    def setUp(self):
        self.session = {}
        self.snapshot = ProjectSnapshot(self.session)

    def test_fresh_snapshot_taken_once(self):
        self.snapshot.save(make_project([make_place(1)]), fresh=True)
        self.assertEqual(self.snapshot.take_fresh(5).places[0].id, 1)
        self.assertIsNone(self.snapshot.take_fresh(5))
        # still available as the last known state
        self.assertEqual(self.snapshot.get(5).name, 'Art Tour')

    def test_stale_snapshot_not_taken(self):
        self.snapshot.save(make_project())
        self.assertIsNone(self.snapshot.take_fresh(5))

    def test_other_project_ignored(self):
        self.snapshot.save(make_project(pk=6), fresh=True)
        self.assertIsNone(self.snapshot.get(5))
        self.assertIsNone(self.snapshot.take_fresh(5))


# ---------------------------------------------------------------------------
# Draft selection and forms
# ---------------------------------------------------------------------------

class ProjectDraftTests(SimpleTestCase):

    def setUp(self):
        self.session = {}
        self.draft = ProjectDraft(self.session)

    def test_add_and_payload_in_selection_order(self):
        self.draft.add(make_artwork(2))
        self.draft.add(make_artwork(1))
        self.assertEqual(self.draft.places_payload(), [{'external_id': 2}, {'external_id': 1}])

    def test_duplicate_artwork_ignored(self):
        self.assertTrue(self.draft.add(make_artwork(1)))
        self.assertFalse(self.draft.add(make_artwork(1)))
        self.assertEqual(len(self.draft.selected), 1)

    def test_maximum_10_places(self):
        for i in range(10):
            self.draft.add(make_artwork(i))
        with self.assertRaisesMessage(SelectionError, 'Maximum 10 places per project.'):
            self.draft.add(make_artwork(99))
        self.assertEqual(len(self.draft.selected), 10)

    def test_remove(self):
        self.draft.add(make_artwork(1))
        self.draft.add(make_artwork(2))
        self.draft.remove(1)
        self.assertEqual(self.draft.selected_ids, {2})

    def test_saved_draft_survives_reload(self):
        self.draft.set_details(name='Euro Trip', start_date='2025-06-01')
        self.draft.set_results('monet', [make_artwork(7, 'Water Lilies')])
        self.draft.add(self.draft.find_result(7))
        self.draft.save()

        reloaded = ProjectDraft(self.session)
        self.assertEqual(reloaded.name, 'Euro Trip')
        self.assertEqual(reloaded.query, 'monet')
        self.assertEqual(reloaded.selected[0].title, 'Water Lilies')

    def test_clear(self):
        self.draft.add(make_artwork(1))
        self.draft.save()
        self.draft.clear()
        self.assertNotIn(ProjectDraft.session_key, self.session)
        self.assertEqual(ProjectDraft(self.session).selected, [])


class FormTests(SimpleTestCase):

    def test_blank_name_rejected(self):
        form = ProjectForm({'name': '   '})
        self.assertFalse(form.is_valid())
        self.assertEqual(form.errors['name'], ['Project name is required.'])

    def test_payload_is_trimmed_and_omits_empty_fields(self):
        form = ProjectForm({'name': '  Trip to Chicago ', 'description': '  ', 'start_date': ''})
        self.assertTrue(form.is_valid())
        self.assertEqual(form.to_payload(), {'name': 'Trip to Chicago', 'description': None, 'start_date': None})

    def test_payload_formats_start_date(self):
        form = ProjectForm({'name': 'Euro Trip', 'start_date': '2025-06-01'})
        self.assertTrue(form.is_valid())
        self.assertEqual(form.to_payload()['start_date'], '2025-06-01')

    def test_filters_fall_back_to_defaults(self):
        self.assertEqual(ProjectFilterForm({'page': 'abc', 'status': 'bogus'}).filters(), (1, ''))
        self.assertEqual(ProjectFilterForm({'page': '3', 'status': 'completed'}).filters(), (3, 'completed'))


# ---------------------------------------------------------------------------
# List view
# ---------------------------------------------------------------------------

class ProjectListViewTests(TestCase):
    """Tests for the project listing page at /."""

    def page(self, items, pages=1, page=1):
        return PaginatedProjects(items=items, total=len(items), page=page, limit=10, pages=pages)

    @patch('planner.views.list_projects')
    def test_lists_projects(self, mock_list):
        mock_list.return_value = self.page([
            ProjectListItem(id=1, name='Paris Trip', place_count=1, start_date='2025-06-01'),
            ProjectListItem(id=2, name='Rome Trip', status='completed', place_count=3),
        ])
        r = self.client.get('/')
        self.assertEqual(r.status_code, 200)
        mock_list.assert_called_once_with(1, 10, None)
        self.assertContains(r, 'Paris Trip')
        self.assertContains(r, 'Start: 2025-06-01')
        self.assertContains(r, '1 place<')
        self.assertContains(r, '3 places')
        self.assertContains(r, 'badge-completed')
        self.assertNotContains(r, 'Page 1 of')

    @patch('planner.views.list_projects')
    def test_status_filter_and_page(self, mock_list):
        mock_list.return_value = self.page([ProjectListItem(id=1, name='Done')], pages=3, page=2)
        r = self.client.get('/?status=completed&page=2')
        mock_list.assert_called_once_with(2, 10, 'completed')
        self.assertContains(r, 'Page 2 of 3')
        self.assertContains(r, 'page=1')
        self.assertContains(r, 'page=3')

    @patch('planner.views.list_projects')
    def test_invalid_filters_fall_back(self, mock_list):
        mock_list.return_value = self.page([])
        self.client.get('/?status=archived&page=-4')
        mock_list.assert_called_once_with(1, 10, None)

    @patch('planner.views.list_projects')
    def test_empty_state(self, mock_list):
        mock_list.return_value = self.page([])
        r = self.client.get('/')
        self.assertContains(r, 'No projects yet.')
        self.assertContains(r, 'Create your first project')

    @patch('planner.views.list_projects', side_effect=ApiError('Could not reach the travel API.'))
    def test_load_error(self, _mock):
        r = self.client.get('/')
        self.assertEqual(r.status_code, 200)
        self.assertContains(r, 'Could not reach the travel API.')
        self.assertNotContains(r, 'No projects yet.')

    @patch('planner.api.requests.request')
    def test_html_body_shows_error_banner(self, mock_request):
        mock_request.return_value = mock_response(200)
        r = self.client.get('/')
        self.assertEqual(r.status_code, 200)
        self.assertContains(r, 'Invalid response from the travel API.')
        self.assertNotContains(r, 'No projects yet.')

    @patch('planner.views.list_projects')
    def test_confirm_delete_modal(self, mock_list):
        mock_list.return_value = self.page([ProjectListItem(id=4, name='Delete Me')])
        r = self.client.get('/?confirm_delete=4')
        self.assertContains(r, 'Are you sure you want to delete <strong>Delete Me</strong>?')
        self.assertContains(r, 'action="/projects/4/delete/"')


class ProjectDeleteViewTests(TestCase):

    @patch('planner.views.delete_project')
    def test_delete_redirects_back_to_listing(self, mock_delete):
        r = self.client.post('/projects/4/delete/', {'next': '/?status=active'})
        mock_delete.assert_called_once_with(4)
        self.assertRedirects(r, '/?status=active', fetch_redirect_response=False)

    @patch('planner.views.delete_project')
    def test_offsite_next_ignored(self, _mock):
        r = self.client.post('/projects/4/delete/', {'next': 'https://evil.example/'})
        self.assertRedirects(r, '/', fetch_redirect_response=False)

    @patch('planner.views.list_projects')
    @patch('planner.views.delete_project',
           side_effect=ApiError('Cannot delete project with visited places.', status=400))
    def test_delete_failure_shows_modal(self, _mock_delete, mock_list):
        mock_list.return_value = PaginatedProjects(
            items=[ProjectListItem(id=4, name='Keep Me')], total=1, page=1, limit=10, pages=1)
        r = self.client.post('/projects/4/delete/', {'next': '/'}, follow=True)
        self.assertContains(r, 'Cannot Delete Project')
        self.assertContains(r, 'Cannot delete project with visited places.')


# ---------------------------------------------------------------------------
# Detail view
# ---------------------------------------------------------------------------

class ProjectDetailViewTests(TestCase):
    """Tests for /projects/{pk}/"""

    def setUp(self):
        cache.clear()
        self.project = make_project([make_place(1), make_place(2, visited=True)])

    @patch('planner.views.get_project')
    def test_detail_renders_project(self, mock_get):
        mock_get.return_value = Project.from_dict(PROJECT_DATA)
        r = self.client.get('/projects/5/')
        self.assertEqual(r.status_code, 200)
        self.assertContains(r, 'Art Tour')
        self.assertContains(r, 'Museum tour')
        self.assertContains(r, '1 place<')
        self.assertContains(r, '0 visited')
        self.assertContains(r, 'Georges Seurat')
        self.assertContains(r, 'Origin: France')
        self.assertContains(r, 'https://www.artic.edu/iiif/2/abc123/full/300,/0/default.jpg')
        self.assertContains(r, 'Add notes...')
        self.assertContains(r, 'Add Place')

    @patch('planner.views.get_project', side_effect=ApiError('Project not found', status=404))
    def test_missing_project(self, _mock):
        r = self.client.get('/projects/9999/')
        self.assertEqual(r.status_code, 404)
        self.assertContains(r, 'Project not found', status_code=404)
        self.assertContains(r, 'Back to projects', status_code=404)

    @patch('planner.views.get_project', side_effect=ApiError('Request failed: 500', status=500))
    def test_backend_failure(self, _mock):
        r = self.client.get('/projects/5/')
        self.assertEqual(r.status_code, 502)

    @patch('planner.views.update_place')
    @patch('planner.views.get_project')
    def test_toggle_visited_completes_project_without_refetch(self, mock_get, mock_update):
        mock_get.return_value = self.project
        mock_update.return_value = make_place(1, visited=True)

        self.client.get('/projects/5/')
        r = self.client.post('/projects/5/', {'action': 'toggle_visited', 'place_id': 1}, follow=True)

        mock_update.assert_called_once_with(5, 1, visited=True)
        self.assertEqual(mock_get.call_count, 1)
        self.assertContains(r, 'badge-completed')
        self.assertContains(r, '2 visited')

    @patch('planner.views.update_place')
    @patch('planner.views.get_project')
    def test_untoggle_visited(self, mock_get, mock_update):
        mock_get.return_value = self.project
        mock_update.return_value = make_place(2, visited=False)
        self.client.get('/projects/5/')
        self.client.post('/projects/5/', {'action': 'toggle_visited', 'place_id': 2})
        mock_update.assert_called_once_with(5, 2, visited=False)

    @patch('planner.views.update_place')
    @patch('planner.views.get_project')
    def test_save_notes(self, mock_get, mock_update):
        mock_get.return_value = self.project
        mock_update.return_value = make_place(1, notes='Beautiful!')

        r = self.client.get('/projects/5/?notes=1')
        self.assertContains(r, 'name="notes"')

        r = self.client.post('/projects/5/', {'action': 'save_notes', 'place_id': 1, 'notes': 'Beautiful!'}, follow=True)
        mock_update.assert_called_once_with(5, 1, notes='Beautiful!')
        self.assertContains(r, 'Beautiful!')

    @patch('planner.views.update_place')
    @patch('planner.views.get_project')
    def test_save_notes_keeps_whitespace(self, mock_get, mock_update):
        mock_get.return_value = self.project
        mock_update.return_value = make_place(1, notes='  line one\n')
        self.client.post('/projects/5/', {'action': 'save_notes', 'place_id': 1, 'notes': '  line one\n'})
        mock_update.assert_called_once_with(5, 1, notes='  line one\n')

    @patch('planner.views.list_projects')
    @patch('planner.views.update_place', side_effect=ApiError('Project not found', status=404))
    @patch('planner.views.get_project')
    def test_failed_update_on_missing_project_does_not_leak_to_listing(self, mock_get, _mock_update, mock_list):
        mock_get.return_value = self.project
        mock_list.return_value = PaginatedProjects(items=[], total=0, page=1, limit=10, pages=0)
        self.client.get('/projects/5/')

        mock_get.side_effect = ApiError('Project not found', status=404)
        # drop the cached snapshot so the POST has to fetch the project
        session = self.client.session
        session.pop(ProjectSnapshot.session_key, None)
        session.save()

        r = self.client.post('/projects/5/', {'action': 'toggle_visited', 'place_id': 1}, follow=True)
        self.assertEqual(r.status_code, 404)
        self.assertContains(r, 'Project not found', status_code=404)

        r = self.client.get('/')
        self.assertNotContains(r, 'Cannot Delete Project')
        self.assertNotContains(r, 'Project not found')

    @patch('planner.views.list_projects')
    @patch('planner.views.update_place', side_effect=ApiError('Place not found', status=404))
    @patch('planner.views.get_project')
    def test_detail_errors_not_shown_as_delete_failures(self, mock_get, _mock_update, mock_list):
        """A detail-page error left unread never opens the delete failure modal."""
        mock_get.return_value = self.project
        mock_list.return_value = PaginatedProjects(items=[], total=0, page=1, limit=10, pages=0)
        self.client.post('/projects/5/', {'action': 'toggle_visited', 'place_id': 1})

        r = self.client.get('/')
        self.assertNotContains(r, 'Cannot Delete Project')

    @patch('planner.views.update_place', side_effect=ApiError('Place not found', status=404))
    @patch('planner.views.get_project')
    def test_update_failure_shows_error_modal(self, mock_get, _mock_update):
        mock_get.return_value = self.project
        r = self.client.post('/projects/5/', {'action': 'toggle_visited', 'place_id': 1}, follow=True)
        self.assertContains(r, 'Place not found')
        self.assertContains(r, 'modal-title')

    @patch('planner.views.update_place')
    @patch('planner.views.get_project')
    def test_unknown_place_is_an_error(self, mock_get, mock_update):
        mock_get.return_value = self.project
        r = self.client.post('/projects/5/', {'action': 'toggle_visited', 'place_id': 77}, follow=True)
        mock_update.assert_not_called()
        self.assertContains(r, 'Place not found.')

    @patch('planner.views.get_project')
    def test_unknown_action(self, mock_get):
        mock_get.return_value = self.project
        r = self.client.post('/projects/5/', {'action': 'explode'})
        self.assertEqual(r.status_code, 400)

    @patch('planner.views.search_artworks')
    @patch('planner.views.get_project')
    def test_search_marks_attached_artworks(self, mock_get, mock_search):
        mock_get.return_value = self.project
        mock_search.return_value = ArtworkSearchResponse(
            results=[make_artwork(1001, 'Already Here'), make_artwork(42, 'New One')], total=2, page=1)

        r = self.client.get('/projects/5/?search=1&q=monet')
        mock_search.assert_called_once_with('monet')
        self.assertContains(r, 'Hide Search')
        self.assertContains(r, 'Already Here')
        self.assertContains(r, '>Added<')
        self.assertContains(r, 'name="external_id" value="42"')

    @patch('planner.views.search_artworks')
    @patch('planner.views.get_project')
    def test_search_without_results(self, mock_get, mock_search):
        mock_get.return_value = self.project
        mock_search.return_value = ArtworkSearchResponse(results=[], total=0, page=1)
        r = self.client.get('/projects/5/?search=1&q=nothing')
        self.assertContains(r, 'No results found.')

    @patch('planner.views.search_artworks')
    @patch('planner.views.get_project')
    def test_blank_search_ignored(self, mock_get, mock_search):
        mock_get.return_value = self.project
        self.client.get('/projects/5/?search=1&q=+')
        mock_search.assert_not_called()

    @patch('planner.views.add_place')
    @patch('planner.views.get_project')
    def test_add_place_appends_locally(self, mock_get, mock_add):
        mock_get.return_value = self.project
        mock_add.return_value = make_place(9, external_id=42)

        self.client.get('/projects/5/')
        r = self.client.post('/projects/5/', {'action': 'add_place', 'external_id': '42'}, follow=True)

        mock_add.assert_called_once_with(5, 42)
        self.assertEqual(mock_get.call_count, 1)
        self.assertContains(r, 'Art 9')
        self.assertContains(r, '3 places')

    @patch('planner.views.add_place')
    @patch('planner.views.get_project')
    def test_add_place_keeps_search_open(self, mock_get, mock_add):
        mock_get.return_value = self.project
        mock_add.return_value = make_place(9, external_id=42)
        r = self.client.post('/projects/5/', {
            'action': 'add_place', 'external_id': '42', 'next': '/projects/5/?search=1',
        })
        self.assertRedirects(r, '/projects/5/?search=1', fetch_redirect_response=False)

    @patch('planner.views.add_place')
    @patch('planner.views.get_project')
    def test_add_duplicate_place_ignored(self, mock_get, mock_add):
        mock_get.return_value = self.project
        self.client.post('/projects/5/', {'action': 'add_place', 'external_id': '1001'})
        mock_add.assert_not_called()

    @patch('planner.views.add_place')
    @patch('planner.views.get_project')
    def test_project_limit_10_places(self, mock_get, mock_add):
        mock_get.return_value = make_project([make_place(i) for i in range(10)])

        r = self.client.get('/projects/5/?search=1')
        self.assertNotContains(r, 'Add Place')

        r = self.client.post('/projects/5/', {'action': 'add_place', 'external_id': '42'}, follow=True)
        mock_add.assert_not_called()
        self.assertContains(r, 'Maximum 10 places per project.')

    @patch('planner.views.get_project')
    def test_edit_modal_prefilled(self, mock_get):
        mock_get.return_value = Project.from_dict(PROJECT_DATA)
        r = self.client.get('/projects/5/?edit=1')
        self.assertContains(r, 'Edit Project')
        self.assertContains(r, 'value="Art Tour"')
        self.assertContains(r, 'value="2025-06-01"')

    @patch('planner.views.update_project')
    @patch('planner.views.get_project')
    def test_edit_requires_name(self, mock_get, mock_update):
        mock_get.return_value = self.project
        r = self.client.post('/projects/5/', {'action': 'edit', 'name': '  '})
        self.assertEqual(r.status_code, 200)
        self.assertContains(r, 'Project name is required.')
        mock_update.assert_not_called()

    @patch('planner.views.update_project')
    @patch('planner.views.get_project')
    def test_edit_project(self, mock_get, mock_update):
        mock_get.return_value = self.project
        mock_update.return_value = make_project(name='New Name')

        r = self.client.post('/projects/5/', {
            'action': 'edit', 'name': ' New Name ', 'description': '', 'start_date': '2025-07-01',
        }, follow=True)

        mock_update.assert_called_once_with(5, name='New Name', description=None, start_date='2025-07-01')
        self.assertContains(r, 'New Name')
        self.assertContains(r, '2 places')


# ---------------------------------------------------------------------------
# Creation view
# ---------------------------------------------------------------------------

class ProjectCreateViewTests(TestCase):
    """Tests for the multi-step form at /projects/new/"""

    url = '/projects/new/'

    def seed_draft(self, **data):
        session = self.client.session
        session[ProjectDraft.session_key] = data
        session.save()

    def test_empty_form(self):
        r = self.client.get(self.url)
        self.assertEqual(r.status_code, 200)
        self.assertContains(r, 'Create New Project')
        self.assertContains(r, 'Places (0/10)')

    def test_new_visit_starts_empty_draft(self):
        self.seed_draft(name='Old Trip', selected=[make_artwork(1, 'Water Lilies').to_dict()])
        r = self.client.get(self.url)
        self.assertContains(r, 'Places (0/10)')
        self.assertNotContains(r, 'value="Old Trip"')
        self.assertNotContains(r, 'Water Lilies')
        self.assertNotIn(ProjectDraft.session_key, self.client.session)

    @patch('planner.views.search_artworks')
    def test_search_keeps_typed_details(self, mock_search):
        mock_search.return_value = ArtworkSearchResponse(results=[make_artwork(1, 'Water Lilies')], total=1, page=1)
        r = self.client.post(self.url, {'name': 'Art Tour', 'q': ' monet ', 'search': '1'})
        mock_search.assert_called_once_with('monet')
        self.assertContains(r, 'Water Lilies')
        self.assertContains(r, 'value="Art Tour"')
        self.assertNotContains(r, 'Project name is required.')

    @patch('planner.views.search_artworks', side_effect=ApiError('Catalog unavailable', status=503))
    def test_search_error(self, _mock):
        r = self.client.post(self.url, {'name': '', 'q': 'monet', 'search': '1'})
        self.assertContains(r, 'Catalog unavailable')

    @patch('planner.views.create_project')
    @patch('planner.views.get_project')
    @patch('planner.views.search_artworks')
    def test_full_flow(self, mock_search, mock_get, mock_create):
        mock_search.return_value = ArtworkSearchResponse(
            results=[make_artwork(1, 'Water Lilies'), make_artwork(2, 'American Gothic')], total=2, page=1)
        mock_create.return_value = make_project([make_place(1, external_id=2)], pk=7)

        self.client.post(self.url, {'name': 'Art Tour', 'q': 'monet', 'search': '1'})
        r = self.client.post(self.url, {'name': 'Art Tour', 'add': '2'})
        self.assertContains(r, 'Places (1/10)')
        self.assertContains(r, 'Selected places:')
        self.assertContains(r, '>Added<')

        r = self.client.post(self.url, {'name': ' Art Tour ', 'description': '', 'start_date': '', 'create': '1'})
        mock_create.assert_called_once_with(
            places=[{'external_id': 2}], name='Art Tour', description=None, start_date=None)
        self.assertRedirects(r, '/projects/7/', fetch_redirect_response=False)

        r = self.client.get('/projects/7/')
        mock_get.assert_not_called()
        self.assertContains(r, 'Art Tour')

        # the draft is gone
        r = self.client.get(self.url)
        self.assertContains(r, 'Places (0/10)')

    def test_remove_selected(self):
        self.seed_draft(selected=[make_artwork(1).to_dict(), make_artwork(2).to_dict()])
        r = self.client.post(self.url, {'name': '', 'remove': '1'})
        self.assertContains(r, 'Places (1/10)')

    def test_eleventh_place_rejected(self):
        self.seed_draft(
            results=[make_artwork(99).to_dict()],
            selected=[make_artwork(i).to_dict() for i in range(10)],
        )
        r = self.client.post(self.url, {'name': 'Big Trip', 'add': '99'})
        self.assertContains(r, 'Maximum 10 places per project.')
        self.assertContains(r, 'Places (10/10)')

    @patch('planner.views.create_project')
    def test_name_required(self, mock_create):
        r = self.client.post(self.url, {'name': '   ', 'create': '1'})
        self.assertContains(r, 'Project name is required.')
        mock_create.assert_not_called()

    @patch('planner.views.create_project',
           side_effect=ApiError('places: A project can have a maximum of 10 places.', status=400))
    def test_create_failure_keeps_draft(self, _mock):
        self.seed_draft(selected=[make_artwork(1).to_dict()])
        r = self.client.post(self.url, {'name': 'Trip', 'create': '1'})
        self.assertEqual(r.status_code, 200)
        self.assertContains(r, 'A project can have a maximum of 10 places.')
        self.assertContains(r, 'Places (1/10)')

    def test_cancel_clears_draft(self):
        self.seed_draft(name='Trip', selected=[make_artwork(1).to_dict()])
        r = self.client.post(self.url, {'cancel': '1'})
        self.assertRedirects(r, '/', fetch_redirect_response=False)
        self.assertNotIn(ProjectDraft.session_key, self.client.session)


# ---------------------------------------------------------------------------
# JSON endpoints
# ---------------------------------------------------------------------------

class ArtworkSearchApiTests(APITestCase):

    @patch('planner.views.search_artworks')
    def test_search(self, mock_search):
        mock_search.return_value = ArtworkSearchResponse(results=[make_artwork(1, 'Water Lilies')], total=1, page=1)
        r = self.client.get('/api/artworks/search/', {'q': 'monet', 'page': 2})
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        mock_search.assert_called_once_with(q='monet', page=2, limit=10)
        self.assertEqual(r.data['results'][0]['title'], 'Water Lilies')

    def test_query_required(self):
        r = self.client.get('/api/artworks/search/')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    def test_limit_bounds(self):
        r = self.client.get('/api/artworks/search/', {'q': 'monet', 'limit': 500})
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    @patch('planner.views.search_artworks', side_effect=ApiError('Could not reach the travel API.'))
    def test_upstream_failure(self, _mock):
        r = self.client.get('/api/artworks/search/', {'q': 'monet'})
        self.assertEqual(r.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(r.data, {'error': 'Could not reach the travel API.'})


class ProjectApiTests(APITestCase):

    @patch('planner.views.list_projects')
    def test_list(self, mock_list):
        mock_list.return_value = PaginatedProjects(
            items=[ProjectListItem(id=1, name='P1', place_count=2)], total=1, page=1, limit=5, pages=1)
        r = self.client.get('/api/projects/', {'limit': 5, 'status': 'active'})
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        mock_list.assert_called_once_with(1, 5, 'active')
        self.assertEqual(r.data['items'][0]['place_count'], 2)

    def test_list_rejects_unknown_status(self):
        r = self.client.get('/api/projects/', {'status': 'archived'})
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    @patch('planner.views.get_project')
    def test_retrieve(self, mock_get):
        mock_get.return_value = Project.from_dict(PROJECT_DATA)
        r = self.client.get('/api/projects/5/')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        mock_get.assert_called_once_with(5)
        self.assertEqual(r.data['places'][0]['image_url'],
                         'https://www.artic.edu/iiif/2/abc123/full/300,/0/default.jpg')

    @patch('planner.views.get_project', side_effect=ApiError('Project not found', status=404))
    def test_retrieve_nonexistent_project(self, _mock):
        r = self.client.get('/api/projects/9999/')
        self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(r.data['error'], 'Project not found')


class PlaceApiTests(APITestCase):
    """Tests for /api/projects/{project_pk}/places/{pk}/"""

    url = '/api/projects/5/places/1/'

    @patch('planner.views.update_place')
    @patch('planner.views.get_project')
    def test_mark_visited_mirrors_completion(self, mock_get, mock_update):
        mock_get.return_value = make_project([make_place(1), make_place(2, visited=True)])
        mock_update.return_value = make_place(1, visited=True)

        self.client.get('/api/projects/5/')
        r = self.client.patch(self.url, {'visited': True}, format='json')

        self.assertEqual(r.status_code, status.HTTP_200_OK)
        mock_update.assert_called_once_with(5, 1, visited=True)
        self.assertTrue(r.data['visited'])
        self.assertEqual(r.data['project_status'], 'completed')

    @patch('planner.views.update_place')
    def test_update_notes_without_known_project(self, mock_update):
        mock_update.return_value = make_place(1, notes='Beautiful!')
        r = self.client.patch(self.url, {'notes': 'Beautiful!'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        mock_update.assert_called_once_with(5, 1, notes='Beautiful!')
        self.assertEqual(r.data['notes'], 'Beautiful!')
        self.assertIsNone(r.data['project_status'])

    @patch('planner.views.update_place')
    def test_empty_update_rejected(self, mock_update):
        r = self.client.patch(self.url, {}, format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        mock_update.assert_not_called()

    @patch('planner.views.update_place', side_effect=ApiError('Place not found', status=404))
    def test_backend_error_passed_through(self, _mock):
        r = self.client.patch(self.url, {'visited': True}, format='json')
        self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(r.data, {'error': 'Place not found'})
