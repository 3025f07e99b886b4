import logging

from django.contrib import messages
from django.http import HttpResponse, HttpResponseBadRequest
from django.shortcuts import redirect, render
from django.urls import reverse
from django.utils.http import url_has_allowed_host_and_scheme
from django.views import View
from rest_framework import status, viewsets
from rest_framework.response import Response
from rest_framework.views import APIView

from .api import (
    ApiError,
    add_place,
    create_project,
    delete_project,
    get_project,
    list_projects,
    search_artworks,
    update_place,
    update_project,
)
from .drafts import ProjectDraft, SelectionError
from .forms import ArtworkSearchForm, PlaceNotesForm, ProjectFilterForm, ProjectForm
from .serializers import (
    ArtworkSearchQuerySerializer,
    ArtworkSearchResponseSerializer,
    PaginatedProjectsSerializer,
    PlaceSerializer,
    PlaceUpdateSerializer,
    ProjectListQuerySerializer,
    ProjectSerializer,
)
from .state import MAX_PLACES, ProjectSnapshot, append_place, merge_place, merge_project

logger = logging.getLogger(__name__)

PAGE_SIZE = 10


def _int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _next_url(request, default):
    """Where to go after a POST: the form's `next` field when it is local."""
    next_url = request.POST.get('next')
    if next_url and url_has_allowed_host_and_scheme(
        next_url, allowed_hosts={request.get_host()}, require_https=request.is_secure()
    ):
        return next_url
    return default


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

class ProjectListView(View):
    """
    Paginated project listing, filterable by status.
    ?confirm_delete=<id> opens the delete confirmation for a listed project.
    """
    template_name = 'planner/project_list.html'

    def get(self, request):
        page, status_filter = ProjectFilterForm(request.GET).filters()
        context = {
            'filter_form': ProjectFilterForm(initial={'status': status_filter}),
            'status_filter': status_filter,
            'page': page,
            'pages': 0,
            'projects': [],
            'error': '',
        }
        try:
            data = list_projects(page, PAGE_SIZE, status_filter or None)
            context.update(projects=data.items, pages=data.pages)
        except ApiError as exc:
            context['error'] = exc.message or 'Failed to load projects'

        confirm_id = _int(request.GET.get('confirm_delete'))
        context['confirm_delete'] = next(
            (p for p in context['projects'] if p.id == confirm_id), None
        )
        return render(request, self.template_name, context)


class ProjectDeleteView(View):

    def post(self, request, pk):
        next_url = _next_url(request, reverse('planner:project-list'))
        try:
            delete_project(pk)
        except ApiError as exc:
            messages.error(request, exc.message or 'Failed to delete project', extra_tags='delete')
        else:
            logger.info("Deleted project %s", pk)
        return redirect(next_url)


class ProjectCreateView(View):
    """
    Multi-step "new project" form. One form posts back here with one of the
    search/add/remove/create/cancel buttons; progress is kept in a ProjectDraft.
    """
    template_name = 'planner/project_new.html'

    def get(self, request):
        # every visit starts a new project; the steps themselves are POSTs
        draft = ProjectDraft(request.session)
        draft.clear()
        return self.render_draft(request, draft)

    def post(self, request):
        draft = ProjectDraft(request.session)
        if 'cancel' in request.POST:
            draft.clear()
            return redirect('planner:project-list')

        draft.set_details(
            name=request.POST.get('name', ''),
            description=request.POST.get('description', ''),
            start_date=request.POST.get('start_date', ''),
        )
        error = search_error = ''
        form = None

        if 'search' in request.POST:
            search_form = ArtworkSearchForm(request.POST)
            if search_form.is_valid():
                query = search_form.cleaned_data['q']
                try:
                    draft.set_results(query, search_artworks(query).results)
                except ApiError as exc:
                    search_error = exc.message or 'Search failed'
        elif 'add' in request.POST:
            artwork = draft.find_result(_int(request.POST['add']))
            if artwork is not None:
                try:
                    draft.add(artwork)
                except SelectionError as exc:
                    error = str(exc)
        elif 'remove' in request.POST:
            draft.remove(_int(request.POST['remove']))
        elif 'create' in request.POST:
            form = ProjectForm(request.POST)
            if form.is_valid():
                try:
                    project = create_project(places=draft.places_payload(), **form.to_payload())
                except ApiError as exc:
                    error = exc.message or 'Failed to create project'
                else:
                    logger.info("Created project %s with %d places", project.id, len(project.places))
                    draft.clear()
                    ProjectSnapshot(request.session).save(project, fresh=True)
                    return redirect('planner:project-detail', pk=project.id)
            else:
                error = next(iter(form.errors.values()))[0]

        draft.save()
        return self.render_draft(request, draft, form=form, error=error, search_error=search_error)

    def render_draft(self, request, draft, form=None, error='', search_error=''):
        if form is None:
            form = ProjectForm(initial={
                'name': draft.name,
                'description': draft.description,
                'start_date': draft.start_date,
            })
        context = {
            'form': form,
            'draft': draft,
            'max_places': MAX_PLACES,
            'search_form': ArtworkSearchForm(initial={'q': draft.query}),
            'results': draft.results,
            'searched': bool(draft.query),
            'added_ids': draft.selected_ids,
            'error': error,
            'search_error': search_error,
        }
        return render(request, self.template_name, context)


class ProjectDetailView(View):
    """
    A single project with its places.

    GET options: ?edit=1 opens the edit modal, ?search=1&q=... shows the
    artwork search, ?notes=<place id> opens the notes editor of a place.
    POST takes an `action`; the result is merged into the session snapshot
    and rendered on the following GET without fetching the project again.
    """
    template_name = 'planner/project_detail.html'
    actions = ('edit', 'add_place', 'toggle_visited', 'save_notes')

    def get(self, request, pk):
        snapshot = ProjectSnapshot(request.session)
        project = snapshot.take_fresh(pk)
        if project is None:
            try:
                project = get_project(pk)
            except ApiError as exc:
                return render(
                    request,
                    'planner/project_error.html',
                    {'error': exc.message or 'Failed to load project'},
                    status=404 if exc.status == 404 else 502,
                )
            snapshot.save(project)
        return self.render_project(request, project)

    def post(self, request, pk):
        action = request.POST.get('action')
        if action not in self.actions:
            return HttpResponseBadRequest("Unknown action.")

        snapshot = ProjectSnapshot(request.session)
        detail_url = reverse('planner:project-detail', kwargs={'pk': pk})
        try:
            project = snapshot.get(pk) or get_project(pk)
            result = getattr(self, f'handle_{action}')(request, project)
        except ApiError as exc:
            messages.error(request, exc.message, extra_tags='modal')
            return redirect(detail_url)

        if isinstance(result, HttpResponse):
            return result
        snapshot.save(result, fresh=True)
        return redirect(_next_url(request, detail_url))

    def handle_edit(self, request, project):
        form = ProjectForm(request.POST)
        if not form.is_valid():
            return self.render_project(request, project, edit_form=form)
        updated = update_project(project.id, **form.to_payload())
        logger.info("Updated project %s", project.id)
        return merge_project(project, updated)

    def handle_add_place(self, request, project):
        external_id = _int(request.POST.get('external_id'))
        if external_id is None:
            raise ApiError("Choose an artwork to add.")
        if len(project.places) >= MAX_PLACES:
            raise ApiError(f"Maximum {MAX_PLACES} places per project.")
        if external_id in project.external_ids:
            return project
        place = add_place(project.id, external_id)
        logger.info("Added artwork %s to project %s", external_id, project.id)
        return append_place(project, place)

    def handle_toggle_visited(self, request, project):
        place = self._find_place(request, project)
        return merge_place(project, update_place(project.id, place.id, visited=not place.visited))

    def handle_save_notes(self, request, project):
        place = self._find_place(request, project)
        form = PlaceNotesForm(request.POST)
        if not form.is_valid():
            raise ApiError("Notes could not be saved.")
        notes = form.cleaned_data['notes']
        return merge_place(project, update_place(project.id, place.id, notes=notes))

    def _find_place(self, request, project):
        place_id = _int(request.POST.get('place_id'))
        for place in project.places:
            if place.id == place_id:
                return place
        raise ApiError("Place not found.", status=404)

    def render_project(self, request, project, edit_form=None):
        if edit_form is None and request.GET.get('edit'):
            edit_form = ProjectForm(initial={
                'name': project.name,
                'description': project.description or '',
                'start_date': project.start_date or '',
            })

        can_add = len(project.places) < MAX_PLACES
        show_search = can_add and bool(request.GET.get('search'))
        results, searched, search_error = [], False, ''
        search_form = ArtworkSearchForm(request.GET if 'q' in request.GET else None)
        if show_search and search_form.is_bound and search_form.is_valid():
            try:
                results = search_artworks(search_form.cleaned_data['q']).results
                searched = True
            except ApiError as exc:
                search_error = exc.message or 'Search failed'

        notes_place_id = _int(request.GET.get('notes'))
        notes_form = None
        for place in project.places:
            if place.id == notes_place_id:
                notes_form = PlaceNotesForm(initial={'notes': place.notes or ''})

        context = {
            'project': project,
            'edit_form': edit_form,
            'can_add': can_add,
            'show_search': show_search,
            'search_form': search_form,
            'results': results,
            'searched': searched,
            'search_error': search_error,
            'added_ids': project.external_ids,
            'notes_place_id': notes_place_id if notes_form else None,
            'notes_form': notes_form,
        }
        return render(request, self.template_name, context)


# ---------------------------------------------------------------------------
# JSON endpoints for page scripts
# ---------------------------------------------------------------------------

def _error_response(exc):
    """Pass client errors through; anything else is the upstream's fault."""
    if exc.status and 400 <= exc.status < 500:
        code = exc.status
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return Response({"error": exc.message}, status=code)


class ArtworkSearchView(APIView):
    """Artwork catalog search, proxied through the travel API."""

    def get(self, request):
        query = ArtworkSearchQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            data = search_artworks(**query.validated_data)
        except ApiError as exc:
            return _error_response(exc)
        return Response(ArtworkSearchResponseSerializer(data).data)


class ProjectViewSet(viewsets.ViewSet):
    lookup_value_regex = '[0-9]+'

    def list(self, request):
        query = ProjectListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data
        try:
            data = list_projects(params['page'], params['limit'], params.get('status') or None)
        except ApiError as exc:
            return _error_response(exc)
        return Response(PaginatedProjectsSerializer(data).data)

    def retrieve(self, request, pk=None):
        try:
            project = get_project(int(pk))
        except ApiError as exc:
            return _error_response(exc)
        ProjectSnapshot(request.session).save(project)
        return Response(ProjectSerializer(project).data)


class PlaceViewSet(viewsets.ViewSet):
    """
    Places nested under a project: /api/projects/{project_pk}/places/{pk}/
    Only partial updates (notes, visited) are exposed.
    """
    lookup_value_regex = '[0-9]+'

    def partial_update(self, request, project_pk=None, pk=None):
        serializer = PlaceUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            place = update_place(int(project_pk), int(pk), **serializer.validated_data)
        except ApiError as exc:
            return _error_response(exc)

        # mirror the completion status locally when the project is known
        snapshot = ProjectSnapshot(request.session)
        project = snapshot.get(place.project_id)
        project_status = None
        if project is not None:
            project = merge_place(project, place)
            snapshot.save(project, fresh=True)
            project_status = project.status

        data = dict(PlaceSerializer(place).data)
        data['project_status'] = project_status
        return Response(data, status=status.HTTP_200_OK)
