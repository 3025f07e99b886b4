from django import forms

from .api import STATUS_ACTIVE, STATUS_COMPLETED


class ProjectForm(forms.Form):
    # the new-project page submits search/add/remove through the same form
    use_required_attribute = False

    name = forms.CharField(
        max_length=255,
        error_messages={'required': 'Project name is required.'},
        widget=forms.TextInput(attrs={'placeholder': 'My Travel Project'}),
    )
    description = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'rows': 3, 'placeholder': 'A brief description of your travel project...'}),
    )
    start_date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))

    def to_payload(self):
        """Trimmed values for the API; empty optional fields are left out."""
        data = self.cleaned_data
        return {
            'name': data['name'],
            'description': data['description'] or None,
            'start_date': data['start_date'].isoformat() if data['start_date'] else None,
        }


class ProjectFilterForm(forms.Form):
    STATUS_CHOICES = [
        ('', 'All statuses'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    status = forms.ChoiceField(choices=STATUS_CHOICES, required=False)
    page = forms.IntegerField(min_value=1, required=False)

    def filters(self):
        """(page, status) with invalid values dropped back to their defaults."""
        self.is_valid()
        return self.cleaned_data.get('page') or 1, self.cleaned_data.get('status') or ''


class ArtworkSearchForm(forms.Form):
    use_required_attribute = False

    q = forms.CharField(
        max_length=200,
        widget=forms.TextInput(attrs={'placeholder': 'Search artworks (e.g., Monet, landscape, Paris)...'}),
    )


class PlaceNotesForm(forms.Form):
    notes = forms.CharField(
        required=False,
        strip=False,
        widget=forms.Textarea(attrs={'rows': 2, 'placeholder': 'Add notes...'}),
    )
