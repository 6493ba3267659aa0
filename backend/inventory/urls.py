from django.urls import path
from .views import (
    issue_list_create, issue_active, issue_detail, issue_by_issue_no, issue_next_code,
    return_list_create, return_receive_missing, return_detail, return_set_active,
    return_set_inactive, return_by_issue, return_next_code, status_list,
)

urlpatterns = [
    path('issues/', issue_list_create, name='issue-list'),
    path('issues/active/', issue_active, name='issue-active'),
    path('issues/next-code/', issue_next_code, name='issue-next-code'),
    path('issues/issue-no/<str:issue_no>/', issue_by_issue_no, name='issue-by-issue-no'),
    path('issues/<int:pk>/', issue_detail, name='issue-detail'),
    path('returns/', return_list_create, name='return-list'),
    path('returns/receive-missing/', return_receive_missing, name='return-receive-missing'),
    path('returns/next-code/', return_next_code, name='return-next-code'),
    path('returns/by-issue/<int:issue_id>/', return_by_issue, name='return-by-issue'),
    path('returns/<int:pk>/', return_detail, name='return-detail'),
    path('returns/<int:pk>/active/', return_set_active, name='return-set-active'),
    path('returns/<int:pk>/inactive/', return_set_inactive, name='return-set-inactive'),
    path('statuses/', status_list, name='status-list'),
]
