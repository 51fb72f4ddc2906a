"""
Request forms for the PolicyHub JSON API.

Forms are bound from a JSON body with ``bind_json_form``: camelCase keys are
mapped to the snake_case field names and nested objects use WTForms'
``parent-child`` naming, so ``{"nominee": {"name": ...}}`` fills the
``nominee`` FormField.
"""

import math
import re

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import DateField, FloatField, Form, FormField, IntegerField, PasswordField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, InputRequired, Length, NumberRange, Optional, Regexp
from wtforms.validators import ValidationError as FieldError

from policyhub.errors import ValidationError
from policyhub.models import NOMINEE_RELATIONS, ClaimStatus, PaymentMethod

EMAIL_REGEX = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
PAYMENT_METHODS = [m.value for m in PaymentMethod]
CLAIM_OUTCOMES = [ClaimStatus.APPROVED.value, ClaimStatus.REJECTED.value]

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def _snake_case(key):
    return _CAMEL_BOUNDARY.sub('_', key).lower()


def _flatten(data, prefix=''):
    """Yield (field_name, string_value) pairs for a JSON object."""
    for key, value in data.items():
        name = f"{prefix}{_snake_case(key)}"
        if value is None:
            continue
        if isinstance(value, dict):
            yield from _flatten(value, prefix=f"{name}-")
        elif isinstance(value, bool):
            yield name, 'true' if value else ''
        else:
            yield name, str(value)


def json_formdata(data=None):
    """Build WTForms formdata from a JSON object (the request body by default)."""
    if data is None:
        data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    return MultiDict(list(_flatten(data)))


def provided_fields(formdata):
    """Top-level field names present in the submitted data."""
    return {key.split('-', 1)[0] for key in formdata.keys()}


def form_errors(form):
    """Flatten ``form.errors`` into ``["field: message", ...]``."""
    messages = []

    def walk(errors, prefix=''):
        for name, value in errors.items():
            if isinstance(value, dict):
                walk(value, prefix=f"{prefix}{name}.")
            else:
                messages.extend(f"{prefix}{name}: {message}" for message in value)

    walk(form.errors)
    return messages


def bind_json_form(form_cls, data=None):
    """
    Instantiate and validate ``form_cls`` from a JSON body.

    Returns ``(form, provided)`` where ``provided`` is the set of top-level
    fields the client sent. Raises ValidationError listing every field error.
    """
    formdata = json_formdata(data)
    form = form_cls(formdata=formdata, meta={'csrf': False})
    if not form.validate():
        raise ValidationError("Validation error", details=form_errors(form))
    return form, provided_fields(formdata)


def _positive(form, field):
    if field.data is not None and (not math.isfinite(field.data) or field.data <= 0):
        raise FieldError('Must be greater than 0.')


# -------------------- CATALOG --------------------

class PolicyProductForm(FlaskForm):
    code = StringField('Code', validators=[DataRequired(), Length(min=2, max=20)])
    title = StringField('Title', validators=[DataRequired(), Length(min=3, max=100)])
    description = TextAreaField('Description', validators=[Optional(), Length(max=500)])
    premium = FloatField('Premium', validators=[InputRequired(), _positive])
    term_months = IntegerField('Term (months)', validators=[InputRequired(), NumberRange(min=1, max=600)])
    min_sum_insured = FloatField('Minimum sum insured', validators=[Optional(), NumberRange(min=0)])
    max_sum_insured = FloatField('Maximum sum insured', validators=[Optional(), NumberRange(min=0)])

    def validate_max_sum_insured(self, field):
        minimum = self.min_sum_insured.data or 0
        if field.data is not None and field.data < minimum:
            raise FieldError('Must be greater than or equal to the minimum sum insured.')

    def product_data(self, provided=None):
        """Return the submitted product fields, limited to ``provided`` when given."""
        data = {
            'code': self.code.data,
            'title': self.title.data,
            'description': self.description.data,
            'premium': self.premium.data,
            'term_months': self.term_months.data,
            'min_sum_insured': self.min_sum_insured.data,
            'max_sum_insured': self.max_sum_insured.data,
        }
        if provided is None:
            return {k: v for k, v in data.items() if v is not None}
        return {k: v for k, v in data.items() if k in provided}


class PolicyProductUpdateForm(PolicyProductForm):
    code = StringField('Code', validators=[Optional(), Length(min=2, max=20)])
    title = StringField('Title', validators=[Optional(), Length(min=3, max=100)])
    premium = FloatField('Premium', validators=[Optional(), _positive])
    term_months = IntegerField('Term (months)', validators=[Optional(), NumberRange(min=1, max=600)])

    def validate_max_sum_insured(self, field):
        # Bounds against the stored product are checked by the catalog service
        if self.min_sum_insured.data is not None:
            super().validate_max_sum_insured(field)


class AssignAgentForm(FlaskForm):
    agent_id = StringField('Agent', validators=[DataRequired()])


# -------------------- SUBSCRIPTIONS --------------------

class NomineeForm(Form):
    name = StringField('Nominee name', validators=[Optional(), Length(max=100)])
    relation = StringField('Relation', validators=[Optional(), AnyOf(NOMINEE_RELATIONS)])


class PurchaseForm(FlaskForm):
    policy_product_id = StringField('Policy', validators=[DataRequired()])
    start_date = DateField('Start date', format='%Y-%m-%d', validators=[InputRequired()])
    nominee = FormField(NomineeForm)

    def nominee_data(self):
        if not (self.nominee.form.name.data or self.nominee.form.relation.data):
            return None
        return {'name': self.nominee.form.name.data, 'relation': self.nominee.form.relation.data}


class PaymentForm(FlaskForm):
    user_policy_id = StringField('Policy', validators=[DataRequired()])
    method = StringField('Method', validators=[DataRequired(), AnyOf(PAYMENT_METHODS)])
    reference = StringField('Reference', validators=[Optional(), Length(max=100)])


# -------------------- CLAIMS --------------------

class ClaimForm(FlaskForm):
    user_policy_id = StringField('Policy', validators=[DataRequired()])
    incident_date = DateField('Incident date', format='%Y-%m-%d', validators=[InputRequired()])
    description = TextAreaField('Description', validators=[DataRequired(), Length(max=2000)])
    amount_claimed = FloatField('Amount claimed', validators=[InputRequired(), _positive])


class ClaimUpdateForm(FlaskForm):
    incident_date = DateField('Incident date', format='%Y-%m-%d', validators=[Optional()])
    description = TextAreaField('Description', validators=[Optional(), Length(max=2000)])
    amount_claimed = FloatField('Amount claimed', validators=[Optional(), _positive])
    decision_notes = TextAreaField('Decision notes', validators=[Optional(), Length(max=2000)])

    def patch(self, provided):
        """Submitted fields only; unknown names are kept so the service can refuse them."""
        return {name: self[name].data if name in self._fields else None for name in provided}


class ClaimDecisionForm(FlaskForm):
    status = StringField('Outcome', validators=[DataRequired(), AnyOf(CLAIM_OUTCOMES)])
    decision_notes = TextAreaField('Decision notes', validators=[Optional(), Length(max=2000)])


# -------------------- ACCOUNTS --------------------

class RegisterForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(), Length(min=3, max=100)])
    email = StringField('Email', validators=[DataRequired(), Regexp(EMAIL_REGEX, message='Invalid email address.')])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6)])


class AgentCreateForm(RegisterForm):
    pass


class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired()])
    password = PasswordField('Password', validators=[DataRequired()])
