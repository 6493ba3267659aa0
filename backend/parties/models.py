from django.db import models
from backend.core.models import ReferenceModel


class Company(ReferenceModel):
    """Companies items are issued to"""
    CODE_PREFIX = 'COM'

    class Meta(ReferenceModel.Meta):
        db_table = 'companies'
        verbose_name_plural = 'companies'


class Contractor(ReferenceModel):
    """Contractors working on site"""
    CODE_PREFIX = 'CTR'

    class Meta(ReferenceModel.Meta):
        db_table = 'contractors'


class Machine(ReferenceModel):
    """Machines operated by a contractor"""
    CODE_PREFIX = 'MCH'

    contractor = models.ForeignKey(Contractor, on_delete=models.PROTECT, related_name='machines', null=True, blank=True)

    class Meta(ReferenceModel.Meta):
        db_table = 'machines'
