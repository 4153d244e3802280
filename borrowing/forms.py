from django import forms

from .exceptions import ValidationError
from .states import INSPECTION_OUTCOMES, Condition


def clean_payload(form_class, data):
    """Validate ``data`` with ``form_class`` and return cleaned_data, or raise ValidationError."""
    form = form_class(data)
    if not form.is_valid():
        errors = {field: list(messages) for field, messages in form.errors.items()}
        raise ValidationError('Invalid request data', errors)
    return form.cleaned_data


class BorrowRequestForm(forms.Form):
    borrower_id = forms.IntegerField()
    inventory_item_id = forms.IntegerField()
    quantity = forms.IntegerField(min_value=1)
    expected_return_date = forms.DateField()
    borrow_date = forms.DateField(required=False)
    purpose = forms.CharField(max_length=255, required=False)
    location = forms.CharField(max_length=255, required=False)
    notes = forms.CharField(required=False)


class ApproveForm(forms.Form):
    approved_by = forms.CharField(max_length=255)
    return_date = forms.DateField(required=False)


class RejectForm(forms.Form):
    reason = forms.CharField(required=False)
    rejected_by = forms.CharField(max_length=255, required=False)


class ExtendForm(forms.Form):
    new_return_date = forms.DateField()
    extended_by = forms.CharField(max_length=255)
    reason = forms.CharField(required=False)


class MarkReturnedForm(forms.Form):
    received_by = forms.CharField(max_length=255)
    condition = forms.ChoiceField(choices=Condition.choices, required=False)
    notes = forms.CharField(required=False)
    damage_fee = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    return_date = forms.DateField(required=False)

    def clean_condition(self):
        return self.cleaned_data.get('condition') or Condition.GOOD


class ReturnClaimForm(forms.Form):
    borrow_transaction_id = forms.IntegerField()
    quantity_returned = forms.IntegerField(min_value=1, required=False)
    returned_by = forms.CharField(max_length=255, required=False)
    borrower_id = forms.IntegerField(required=False)
    notes = forms.CharField(required=False)


class VerifyClaimForm(forms.Form):
    admin_id = forms.CharField(max_length=255)
    notes = forms.CharField(required=False)
    condition = forms.ChoiceField(choices=Condition.choices, required=False)

    def clean_condition(self):
        return self.cleaned_data.get('condition') or Condition.GOOD


class RejectClaimForm(forms.Form):
    admin_id = forms.CharField(max_length=255)
    rejection_reason = forms.CharField()


class VerificationStatusForm(forms.Form):
    verification_ids = forms.JSONField()

    def clean_verification_ids(self):
        ids = self.cleaned_data['verification_ids']
        if not isinstance(ids, list) or not ids:
            raise forms.ValidationError('Provide a non-empty list of verification ids.')
        try:
            return [int(i) for i in ids]
        except (TypeError, ValueError):
            raise forms.ValidationError('Verification ids must be integers.') from None


class InspectForm(forms.Form):
    admin_id = forms.CharField(max_length=255)
    inspection_status = forms.ChoiceField(choices=[(s.value, s.label) for s in INSPECTION_OUTCOMES])
    notes = forms.CharField(required=False)
    damage_fee = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)


class ArchiveForm(forms.Form):
    performed_by = forms.CharField(max_length=255, required=False)
