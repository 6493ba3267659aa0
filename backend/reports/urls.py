from django.urls import path
from . import views

urlpatterns = [
    path('dashboard/metrics/', views.dashboard_metrics, name='dashboard-metrics'),
    path('reports/active-issues/', views.active_issues_report, name='active-issues-report'),
    path('reports/missing-items/', views.missing_items_report, name='missing-items-report'),
    path('reports/item-history/<int:item_id>/', views.item_history, name='item-history'),
    path('reports/export/active-issues/', views.export_active_issues, name='export-active-issues'),
    path('reports/export/missing-items/', views.export_missing_items, name='export-missing-items'),
]
