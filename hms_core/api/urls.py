# backend/hms_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from hms_core.accounts.api.auth import (
    ChangePasswordView,
    ForgotPasswordView,
    LoginView,
    LogoutView,
    RefreshView,
    RegisterView,
    ResetPasswordView,
    VerifyEmailView,
)
from hms_core.accounts.api.me import MeView
from hms_core.accounts.api.views import DepartmentViewSet, UserViewSet
from hms_core.appointments.api.views import AppointmentViewSet, DoctorScheduleViewSet
from hms_core.audit.api.views import AuditEventViewSet
from hms_core.billing.api.views import BillPaymentsView, BillViewSet
from hms_core.lab.api.views import LabOrderViewSet, LabTestViewSet
from hms_core.medical_records.api.views import DiagnosisSearchView, PatientMedicalRecordViewSet, VisitViewSet
from hms_core.patients.api.views import PatientViewSet
from hms_core.prescriptions.api.views import MedicationViewSet, PrescriptionViewSet

router = DefaultRouter()

router.register(r"users", UserViewSet, basename="users")
router.register(r"departments", DepartmentViewSet, basename="departments")
router.register(r"patients", PatientViewSet, basename="patients")

# schedules before appointments so "schedules" is never read as an appointment id
router.register(r"appointments/schedules", DoctorScheduleViewSet, basename="appointment-schedules")
router.register(r"appointments", AppointmentViewSet, basename="appointments")

router.register(r"prescriptions", PrescriptionViewSet, basename="prescriptions")
router.register(r"medications", MedicationViewSet, basename="medications")
router.register(r"bills", BillViewSet, basename="bills")
router.register(r"lab/orders", LabOrderViewSet, basename="lab-orders")
router.register(r"lab/tests", LabTestViewSet, basename="lab-tests")
router.register(r"medical-records/patient", PatientMedicalRecordViewSet, basename="medical-records")
router.register(r"medical-records/visits", VisitViewSet, basename="medical-visits")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = [
    # Auth + /me
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/refresh/", RefreshView.as_view(), name="refresh"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("auth/register/", RegisterView.as_view(), name="register"),
    path("auth/change-password/", ChangePasswordView.as_view(), name="change-password"),
    path("auth/forgot-password/", ForgotPasswordView.as_view(), name="forgot-password"),
    path("auth/reset-password/", ResetPasswordView.as_view(), name="reset-password"),
    path("auth/verify-email/", VerifyEmailView.as_view(), name="verify-email"),
    path("me/", MeView.as_view(), name="me"),

    # Bill payments (non-ViewSet endpoint)
    path("bills/<uuid:bill_id>/payments/", BillPaymentsView.as_view(), name="bill-payments"),

    path("medical-records/search/diagnosis/", DiagnosisSearchView.as_view(), name="medical-records-diagnosis-search"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]
