# Services package init
"""
ShutterBox Backend — Services Layer
=====================================

What:  Business logic between routes (HTTP) and the database.
How:   Stateless service objects; every persistence call receives the
       request's AsyncSession.

Service Inventory:
    - resolver:            find-or-create for landmarks, colors, labels, tags
    - ImageStore:          atomic image writer + aggregate readers
    - UserStore:           signup writer, user aggregate, social graph
    - PermissionService:   default grants and capability checks
    - sources:             derived raw/large/medium/small/thumb URLs
    - auth_service:        argon2 passwords, JWT bearer tokens
    - FileService:         upload validation and on-disk storage
    - image_analysis:      EXIF metadata and dominant colors (Pillow)
    - VisionService (abstract) / GeminiVisionService: labels and landmarks
    - UploadService:       store → analyze → detect → create_image
"""
