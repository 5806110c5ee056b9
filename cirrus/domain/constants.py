"""
Parameter names shared between the fleet manager, profiles and agents.
"""

# Agent configuration markers
INSTANCE_NAME_PARAM = "env.AZURE_INSTANCE_NAME"
PROFILE_ID_PARAM = "system.cloud.profile_id"

# Profile parameters
MANAGEMENT_CERTIFICATE = "managementCertificate"
SUBSCRIPTION_ID = "subscriptionId"
MAX_INSTANCES_COUNT = "maxInstancesCount"
IMAGES_DATA = "images_data"
SECURE_PREFIX = "secure:"
PASSWORDS_DATA = SECURE_PREFIX + "passwords_data"

CLOUD_CODE = "azure"
DISPLAY_NAME = "Azure"
SETTINGS_PAGE = "azure-settings.html"
STATE_DIRECTORY_NAME = "azureIdx"
