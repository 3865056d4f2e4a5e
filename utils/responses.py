"""Helpers for the {success, data, message, count} response envelope."""
from rest_framework import status as http_status
from rest_framework.response import Response


def success_response(data=None, message=None, count=None, status=http_status.HTTP_200_OK, headers=None):
    body = {'success': True}
    if count is not None:
        body['count'] = count
    if data is not None:
        body['data'] = data
    if message:
        body['message'] = message
    return Response(body, status=status, headers=headers)
