"""
Default configuration tables: KPI definitions, validation rules, benchmark rows.

Plain records, same shape as a configuration file (see config_loader). Each KPI has:
- type: input | calculated
- formula: operator-prefixed formula (calculated KPIs only)
- sections / pillar: report grouping
- formTier: form tier that collects or unlocks the KPI
- description: the business question it answers

Benchmarks are home-services industry figures; volume benchmarks are annual.
"""

SECTION_NAMES = {
    1: "Marketing",
    2: "Sales",
    3: "Operations",
    4: "Finance",
}

PILLAR_NAMES = {
    1: "Lead Generation",
    2: "Conversion",
    3: "Capacity",
    4: "Profitability",
}

KPI_DEFINITIONS = {
    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------
    "total_leads": {
        "name": "Total Leads",
        "category": "volume",
        "type": "input",
        "dataType": "integer",
        "sections": [1, 2],
        "pillar": 1,
        "formTier": "onboarding",
        "tierOrder": 1,
        "description": "How many inbound leads arrived during the period?",
    },
    "in_home_visits": {
        "name": "In-Home Visits",
        "category": "volume",
        "type": "input",
        "dataType": "integer",
        "sections": [2],
        "pillar": 2,
        "formTier": "onboarding",
        "tierOrder": 2,
        "description": "How many leads turned into a booked in-home visit?",
    },
    "jobs_closed": {
        "name": "Jobs Closed",
        "category": "volume",
        "type": "input",
        "dataType": "integer",
        "sections": [2, 3],
        "pillar": 2,
        "formTier": "onboarding",
        "tierOrder": 3,
        "description": "How many visits ended in a sold job?",
    },
    "total_revenue": {
        "name": "Total Revenue",
        "category": "volume",
        "type": "input",
        "dataType": "currency",
        "sections": [4],
        "pillar": 4,
        "formTier": "onboarding",
        "tierOrder": 4,
        "description": "Revenue booked during the period.",
    },
    "num_techs": {
        "name": "Field Technicians",
        "category": "capacity",
        "type": "input",
        "dataType": "integer",
        "sections": [3],
        "pillar": 3,
        "formTier": "onboarding",
        "tierOrder": 5,
        "description": "Technicians available to run jobs.",
    },
    "reported_booking_rate": {
        "name": "Reported Booking Rate",
        "category": "efficiency",
        "type": "input",
        "dataType": "percentage",
        "sections": [2],
        "pillar": 2,
        "formTier": "detailed",
        "tierOrder": 10,
        "description": "Booking rate as the client tracks it; cross-checked against leads and visits.",
    },
    "reported_average_ticket": {
        "name": "Reported Average Ticket",
        "category": "financial",
        "type": "input",
        "dataType": "currency",
        "sections": [4],
        "pillar": 4,
        "formTier": "detailed",
        "tierOrder": 11,
        "description": "Average sale value as the client tracks it.",
    },
    "marketing_spend": {
        "name": "Marketing Spend",
        "category": "financial",
        "type": "input",
        "dataType": "currency",
        "sections": [1, 4],
        "pillar": 1,
        "formTier": "detailed",
        "tierOrder": 12,
        "description": "Total marketing spend during the period.",
    },
    "hours_per_day": {
        "name": "Scheduled Hours per Day",
        "category": "capacity",
        "type": "input",
        "dataType": "number",
        "sections": [3],
        "pillar": 3,
        "formTier": "detailed",
        "tierOrder": 13,
        "description": "Scheduled working hours per technician per day (8 when blank).",
    },
    "billable_hours": {
        "name": "Billable Hours",
        "category": "capacity",
        "type": "input",
        "dataType": "number",
        "sections": [3],
        "pillar": 3,
        "formTier": "detailed",
        "tierOrder": 14,
        "description": "Technician hours billed to customers.",
    },
    "callbacks": {
        "name": "Callbacks",
        "category": "volume",
        "type": "input",
        "dataType": "integer",
        "sections": [3],
        "pillar": 3,
        "formTier": "section_deep",
        "tierOrder": 20,
        "description": "Jobs that needed a return visit to fix the original work.",
    },
    # -------------------------------------------------------------------------
    # Calculated
    # -------------------------------------------------------------------------
    "booking_rate": {
        "name": "Booking Rate",
        "category": "efficiency",
        "type": "calculated",
        "dataType": "percentage",
        "formula": "PERCENTAGE:in_home_visits:total_leads",
        "sections": [2],
        "pillar": 2,
        "formTier": "onboarding",
        "tierOrder": 6,
        "description": "Share of leads that book an in-home visit.",
    },
    "close_rate": {
        "name": "Close Rate",
        "category": "efficiency",
        "type": "calculated",
        "dataType": "percentage",
        "formula": "PERCENTAGE:jobs_closed:in_home_visits",
        "sections": [2],
        "pillar": 2,
        "formTier": "onboarding",
        "tierOrder": 7,
        "description": "Share of visits that end in a sale.",
    },
    "average_ticket": {
        "name": "Average Ticket",
        "category": "financial",
        "type": "calculated",
        "dataType": "currency",
        "formula": "DIVIDE:total_revenue:jobs_closed",
        "sections": [4],
        "pillar": 4,
        "formTier": "onboarding",
        "tierOrder": 8,
        "description": "Revenue per sold job.",
    },
    "lost_leads": {
        "name": "Unbooked Leads",
        "category": "volume",
        "type": "calculated",
        "dataType": "integer",
        "formula": "SUBTRACT:total_leads:in_home_visits",
        "sections": [1, 2],
        "pillar": 1,
        "formTier": "onboarding",
        "tierOrder": 9,
        "direction": "lower",
        "description": "Leads that never became a visit.",
    },
    "revenue_per_day": {
        "name": "Revenue per Day",
        "category": "financial",
        "type": "calculated",
        "dataType": "currency",
        "formula": "PER_DAY:total_revenue",
        "sections": [4],
        "pillar": 4,
        "formTier": "detailed",
        "tierOrder": 15,
        "description": "Average daily revenue over the reporting period.",
    },
    "revenue_per_tech": {
        "name": "Revenue per Technician",
        "category": "financial",
        "type": "calculated",
        "dataType": "currency",
        "formula": "DIVIDE:total_revenue:num_techs",
        "sections": [3, 4],
        "pillar": 4,
        "formTier": "detailed",
        "tierOrder": 16,
        "description": "Revenue produced per field technician.",
    },
    "cost_per_lead": {
        "name": "Cost per Lead",
        "category": "financial",
        "type": "calculated",
        "dataType": "currency",
        "formula": "DIVIDE:marketing_spend:total_leads",
        "sections": [1, 4],
        "pillar": 1,
        "formTier": "detailed",
        "tierOrder": 17,
        "direction": "lower",
        "description": "Marketing spend per inbound lead.",
    },
    "schedule_capacity": {
        "name": "Schedule Capacity (hours)",
        "category": "capacity",
        "type": "calculated",
        "dataType": "number",
        "formula": "CUSTOM:schedule_capacity:num_techs:hours_per_day",
        "sections": [3],
        "pillar": 3,
        "formTier": "detailed",
        "tierOrder": 18,
        "description": "Technician hours available in the period (5-day weeks).",
    },
    "capacity_utilization": {
        "name": "Capacity Utilization",
        "category": "efficiency",
        "type": "calculated",
        "dataType": "percentage",
        "formula": "PERCENTAGE:billable_hours:schedule_capacity",
        "sections": [3],
        "pillar": 3,
        "formTier": "detailed",
        "tierOrder": 19,
        "description": "Share of available technician hours that were billed.",
    },
    "callback_rate": {
        "name": "Callback Rate",
        "category": "quality",
        "type": "calculated",
        "dataType": "percentage",
        "formula": "PERCENTAGE:callbacks:jobs_closed",
        "sections": [3],
        "pillar": 3,
        "formTier": "section_deep",
        "tierOrder": 21,
        "direction": "lower",
        "description": "Share of sold jobs that needed a return visit.",
    },
}


VALIDATION_RULES = [
    {
        "id": "jobs_require_visits",
        "type": "dependency",
        "formula": "REQUIRES:jobs_closed:in_home_visits",
        "severity": "warning",
        "message": "Jobs closed were entered without any in-home visits.",
        "affectedKPIs": ["jobs_closed", "in_home_visits"],
    },
    {
        "id": "billable_hours_require_techs",
        "type": "dependency",
        "formula": "REQUIRES:billable_hours:num_techs",
        "severity": "error",
        "message": "Billable hours were entered without a technician count.",
        "affectedKPIs": ["billable_hours", "num_techs"],
    },
    {
        "id": "booking_rate_range",
        "type": "range",
        "formula": "RANGE:booking_rate:0:100",
        "severity": "error",
        "message": "Booking rate of {actual}% is impossible (limit {expected}%).",
        "affectedKPIs": ["booking_rate", "in_home_visits", "total_leads"],
    },
    {
        "id": "close_rate_range",
        "type": "range",
        "formula": "RANGE:close_rate:0:100",
        "severity": "error",
        "message": "Close rate of {actual}% is impossible (limit {expected}%).",
        "affectedKPIs": ["close_rate", "jobs_closed", "in_home_visits"],
    },
    {
        "id": "capacity_utilization_range",
        "type": "range",
        "formula": "RANGE:capacity_utilization:0:120",
        "severity": "warning",
        "message": "Capacity utilization of {actual}% is {variance} points past the plausible limit of {expected}%.",
        "affectedKPIs": ["capacity_utilization", "billable_hours", "num_techs"],
    },
    {
        "id": "booking_rate_reconciles",
        "type": "reconciliation",
        "formula": "RECONCILE:total_leads*reported_booking_rate/100:in_home_visits",
        "tolerance": 0.10,
        "severity": "warning",
        "message": "Reported booking rate implies {expected} visits but {actual} were entered ({variance} variance).",
        "affectedKPIs": ["total_leads", "reported_booking_rate", "in_home_visits"],
    },
    {
        "id": "revenue_reconciles",
        "type": "reconciliation",
        "formula": "RECONCILE:jobs_closed*reported_average_ticket:total_revenue",
        "tolerance": 0.15,
        "severity": "warning",
        "message": "Jobs x reported average ticket gives {expected} but revenue is {actual} ({variance} variance).",
        "affectedKPIs": ["jobs_closed", "reported_average_ticket", "total_revenue"],
    },
    {
        "id": "leads_exceed_jobs",
        "type": "ratio",
        "formula": "GREATER:total_leads:jobs_closed",
        "severity": "info",
        "message": "Jobs closed ({actual}) is not below total leads ({expected}); check lead tracking.",
        "affectedKPIs": ["total_leads", "jobs_closed"],
    },
    {
        "id": "average_ticket_matches_reported",
        "type": "ratio",
        "formula": "EQUALS:average_ticket:reported_average_ticket",
        "tolerance": 0.10,
        "severity": "info",
        "message": "Calculated average ticket {expected} differs from the reported {actual} by {variance}.",
        "affectedKPIs": ["average_ticket", "reported_average_ticket"],
    },
]


BENCHMARKS = [
    # kpiId, industry, state, poor, average, good, excellent, direction, period
    {"kpiId": "booking_rate", "industry": "all", "state": "all",
     "poor": 30, "average": 45, "good": 60, "excellent": 75, "direction": "higher"},
    {"kpiId": "booking_rate", "industry": "hvac", "state": "all",
     "poor": 35, "average": 50, "good": 65, "excellent": 80, "direction": "higher"},
    {"kpiId": "booking_rate", "industry": "hvac", "state": "ontario",
     "poor": 38, "average": 52, "good": 68, "excellent": 82, "direction": "higher"},
    {"kpiId": "close_rate", "industry": "all", "state": "all",
     "poor": 25, "average": 40, "good": 55, "excellent": 70, "direction": "higher"},
    {"kpiId": "close_rate", "industry": "hvac", "state": "all",
     "poor": 30, "average": 45, "good": 60, "excellent": 72, "direction": "higher"},
    {"kpiId": "average_ticket", "industry": "all", "state": "all",
     "poor": 350, "average": 600, "good": 900, "excellent": 1400, "direction": "higher"},
    {"kpiId": "average_ticket", "industry": "hvac", "state": "all",
     "poor": 450, "average": 800, "good": 1200, "excellent": 2000, "direction": "higher"},
    {"kpiId": "cost_per_lead", "industry": "all", "state": "all",
     "poor": 150, "average": 100, "good": 70, "excellent": 45, "direction": "lower"},
    {"kpiId": "capacity_utilization", "industry": "all", "state": "all",
     "poor": 50, "average": 65, "good": 75, "excellent": 85, "direction": "higher"},
    {"kpiId": "callback_rate", "industry": "all", "state": "all",
     "poor": 10, "average": 6, "good": 4, "excellent": 2, "direction": "lower"},
    {"kpiId": "total_revenue", "industry": "all", "state": "all",
     "poor": 500000, "average": 1200000, "good": 2500000, "excellent": 5000000,
     "direction": "higher", "period": "annual"},
    {"kpiId": "jobs_closed", "industry": "all", "state": "all",
     "poor": 600, "average": 1200, "good": 2400, "excellent": 4000,
     "direction": "higher", "period": "annual"},
]
