from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_nested import routers

from .views import (
    ArtworkSearchView,
    PlaceViewSet,
    ProjectCreateView,
    ProjectDeleteView,
    ProjectDetailView,
    ProjectListView,
    ProjectViewSet,
)

app_name = 'planner'

router = DefaultRouter()
router.register(r'projects', ProjectViewSet, basename='api-project')

# nested: /api/projects/{project_pk}/places/
projects_router = routers.NestedDefaultRouter(router, r'projects', lookup='project')
projects_router.register(r'places', PlaceViewSet, basename='api-project-places')

urlpatterns = [
    path('', ProjectListView.as_view(), name='project-list'),
    path('projects/new/', ProjectCreateView.as_view(), name='project-new'),
    path('projects/<int:pk>/', ProjectDetailView.as_view(), name='project-detail'),
    path('projects/<int:pk>/delete/', ProjectDeleteView.as_view(), name='project-delete'),
    path('api/artworks/search/', ArtworkSearchView.as_view(), name='artwork-search'),
    path('api/', include(router.urls)),
    path('api/', include(projects_router.urls)),
]
