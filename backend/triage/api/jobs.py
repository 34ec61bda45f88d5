"""Operator view of the job queue."""
from rest_framework.views import APIView
from rest_framework.response import Response

from triage.models.job import Job
from triage.serializers import JobListQuerySerializer, JobSerializer


class JobListView(APIView):
    """GET /api/jobs?status=PENDING&limit=50, soonest run_at first."""

    def get(self, request):
        query = JobListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        jobs = Job.objects.filter(status=params["status"]).order_by("run_at")[:params["limit"]]
        return Response({
            "status": params["status"],
            "jobs": JobSerializer(jobs, many=True).data,
        })
