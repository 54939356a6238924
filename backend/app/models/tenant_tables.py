# backend/app/models/tenant_tables.py
"""
Tenant-owned tables outside the lifecycle core.

Their CRUD lives in other services; this module only declares them on the
shared metadata so the store enforces referential integrity and tenant
purges can be ordered and scoped from the foreign keys.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Table
from sqlalchemy.sql import func

from app.db.base import Base

metadata = Base.metadata


def _ref(name: str, target: str, *, nullable: bool = True) -> Column:
    return Column(name, Integer, ForeignKey(f"{target}.id"), nullable=nullable, index=True)


def _table(name: str, *columns: Column, company: bool = True) -> Table:
    cols = [Column("id", Integer, primary_key=True, autoincrement=True)]
    if company:
        cols.append(_ref("company_id", "companies", nullable=False))
    cols.extend(columns)
    cols.append(Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()))
    return Table(name, metadata, *cols)


# Messaging
whatsapp_contacts = _table("whatsapp_contacts")
whatsapp_conversations = _table(
    "whatsapp_conversations",
    _ref("instance_id", "company_instances"),
    _ref("contact_id", "whatsapp_contacts"),
)
whatsapp_messages = _table(
    "whatsapp_messages",
    _ref("conversation_id", "whatsapp_conversations", nullable=False),
    company=False,
)
whatsapp_campaigns = _table("whatsapp_campaigns")
whatsapp_campaign_contacts = _table(
    "whatsapp_campaign_contacts",
    _ref("campaign_id", "whatsapp_campaigns", nullable=False),
    _ref("contact_id", "whatsapp_contacts", nullable=False),
    company=False,
)
whatsapp_audit_logs = _table(
    "whatsapp_audit_logs",
    _ref("conversation_id", "whatsapp_conversations"),
    _ref("user_id", "app_users"),
    company=False,
)

# CRM (stages and leads are ORM models in app.models.crm)
crm_tags = _table("crm_tags")
crm_lead_tags = _table(
    "crm_lead_tags",
    _ref("lead_id", "crm_leads", nullable=False),
    _ref("tag_id", "crm_tags", nullable=False),
    company=False,
)
crm_follow_ups = _table("crm_follow_ups", _ref("lead_id", "crm_leads"))
insurance_plans = _table("insurance_plans")
professionals = _table("professionals")
professional_insurance_config = _table(
    "professional_insurance_config",
    _ref("professional_id", "professionals", nullable=False),
    _ref("insurance_plan_id", "insurance_plans", nullable=False),
    company=False,
)
crm_appointments = _table(
    "crm_appointments",
    _ref("lead_id", "crm_leads"),
    _ref("professional_id", "professionals"),
    _ref("insurance_plan_id", "insurance_plans"),
)

# Finance
financial_categories = _table("financial_categories")
financial_cost_centers = _table("financial_cost_centers")
suppliers = _table("suppliers")
financial_transactions = _table(
    "financial_transactions",
    _ref("category_id", "financial_categories"),
    _ref("cost_center_id", "financial_cost_centers"),
    _ref("supplier_id", "suppliers"),
)
inventory = _table("inventory", _ref("supplier_id", "suppliers"))
inventory_movements = _table(
    "inventory_movements",
    _ref("inventory_id", "inventory", nullable=False),
    company=False,
)
sales = _table("sales", _ref("lead_id", "crm_leads"))
sale_items = _table(
    "sale_items",
    _ref("sale_id", "sales", nullable=False),
    _ref("inventory_id", "inventory"),
    company=False,
)
receivables = _table("receivables", _ref("sale_id", "sales"))
payments = _table("payments", _ref("receivable_id", "receivables", nullable=False), company=False)

# Restaurant
restaurant_tables = _table("restaurant_tables")
restaurant_menu_categories = _table("restaurant_menu_categories")
restaurant_menu_items = _table("restaurant_menu_items", _ref("category_id", "restaurant_menu_categories"))
restaurant_orders = _table("restaurant_orders", _ref("table_id", "restaurant_tables"))
restaurant_order_items = _table(
    "restaurant_order_items",
    _ref("order_id", "restaurant_orders", nullable=False),
    _ref("menu_item_id", "restaurant_menu_items"),
    company=False,
)
restaurant_deliveries = _table(
    "restaurant_deliveries",
    _ref("order_id", "restaurant_orders", nullable=False),
    company=False,
)

# Car wash
lavajato_plans = _table("lavajato_plans")
lavajato_services = _table("lavajato_services")
lavajato_boxes = _table("lavajato_boxes")
lavajato_vehicles = _table("lavajato_vehicles", _ref("lead_id", "crm_leads"))
lavajato_subscriptions = _table(
    "lavajato_subscriptions",
    _ref("plan_id", "lavajato_plans"),
    _ref("vehicle_id", "lavajato_vehicles"),
)
lavajato_appointments = _table(
    "lavajato_appointments",
    _ref("vehicle_id", "lavajato_vehicles"),
    _ref("service_id", "lavajato_services"),
    _ref("box_id", "lavajato_boxes"),
)
lavajato_service_orders = _table(
    "lavajato_service_orders",
    _ref("appointment_id", "lavajato_appointments"),
    _ref("vehicle_id", "lavajato_vehicles"),
)

# Automation (ai_agents is an ORM model)
bots = _table("bots")
bot_nodes = _table("bot_nodes", _ref("bot_id", "bots", nullable=False), company=False)
bot_edges = _table(
    "bot_edges",
    _ref("bot_id", "bots", nullable=False),
    _ref("source_node_id", "bot_nodes"),
    _ref("target_node_id", "bot_nodes"),
    company=False,
)
bot_instances = _table(
    "bot_instances",
    _ref("bot_id", "bots", nullable=False),
    _ref("instance_id", "company_instances", nullable=False),
    company=False,
)
bot_sessions = _table(
    "bot_sessions",
    _ref("bot_id", "bots", nullable=False),
    _ref("conversation_id", "whatsapp_conversations"),
    company=False,
)

# Planning
admin_tasks = _table("admin_tasks", _ref("assigned_to", "app_users"))
admin_task_history = _table(
    "admin_task_history",
    _ref("task_id", "admin_tasks", nullable=False),
    _ref("user_id", "app_users"),
    company=False,
)
roadmap_items = _table("roadmap_items", _ref("created_by", "app_users"))
roadmap_comments = _table(
    "roadmap_comments",
    _ref("item_id", "roadmap_items", nullable=False),
    _ref("user_id", "app_users"),
    company=False,
)
entity_links = _table("entity_links", _ref("created_by", "app_users"))

# Workflows / FAQ (global_templates is an ORM model)
system_workflows = _table("system_workflows")
workflow_executions = _table(
    "workflow_executions",
    _ref("workflow_id", "system_workflows", nullable=False),
    company=False,
)
faq_questions = _table("faq_questions")

# Observability (audit_logs is an ORM model)
admin_alerts = _table("admin_alerts")
system_logs = _table("system_logs", _ref("user_id", "app_users"))
company_settings = _table("company_settings")

# Billing (subscriptions is an ORM model)
invoices = _table("invoices", _ref("subscription_id", "subscriptions"))
company_usage = _table("company_usage")
company_goals = _table("company_goals")
