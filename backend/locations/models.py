from django.db import models
from backend.core.models import ReferenceModel
from backend.parties.models import Company


class Location(ReferenceModel):
    """Sites belonging to a company"""
    CODE_PREFIX = 'LOC'

    company = models.ForeignKey(Company, on_delete=models.PROTECT, related_name='locations', null=True, blank=True)

    class Meta(ReferenceModel.Meta):
        db_table = 'locations'
