import pulumi

from keyvault.declaration import declare, settings_from_config

settings = settings_from_config(
    pulumi.Config(),
    pulumi.Config("aws"),
    default_project=pulumi.get_project(),
    default_environment=pulumi.get_stack(),
)

# Secret, reader role, instance profile and scoped read policy
declare(settings)
