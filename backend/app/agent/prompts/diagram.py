from app.agent.artifacts import DiagramKind

GENERATE_SYSTEM_PROMPT = """
You are an expert software architect and PlantUML specialist.
You turn plain-English architecture descriptions into a markdown explanation plus a PlantUML diagram
that renders on the public PlantUML server without errors.
"""

EDIT_SYSTEM_PROMPT = """
You are an expert software architect and PlantUML specialist.
You modify existing PlantUML diagrams according to plain-English edit instructions and keep them
renderable on the public PlantUML server.
"""

DIAGRAM_KIND_RULES: dict[DiagramKind, str] = {
    DiagramKind.COMPONENT: """COMPONENT DIAGRAM REQUIREMENTS:
- MUST use [Component Name] syntax for all components and services
- Use () syntax for interfaces: (Interface Name)
- Use --> for dependencies and connections
- Use ..> for weak dependencies
- Group related components with rectangle/package if needed
- Example structure:
  @startuml
  [User Interface] --> [Business Logic]
  [Business Logic] --> [Data Access]
  [Data Access] --> [Database]
  @enduml""",
    DiagramKind.DEPLOYMENT: """DEPLOYMENT DIAGRAM REQUIREMENTS:
- MUST use node "Node Name" syntax for physical nodes/servers
- Use artifact "Artifact Name" syntax for deployable components
- Show deployment relationships with -->
- Include hardware/infrastructure components
- Example structure:
  @startuml
  node "Web Server" {
    [Web Application]
  }
  node "Database Server" {
    [Database]
  }
  [Web Application] --> [Database]
  @enduml""",
    DiagramKind.CLASS: """CLASS DIAGRAM REQUIREMENTS:
- MUST use class ClassName { } syntax for all classes
- Include attributes and methods inside braces
- Use + for public, - for private, # for protected, ~ for package
- Use --|> for inheritance, --* for composition, --o for aggregation
- Use --> for simple associations
- Example structure:
  @startuml
  class User {
    +name: String
    +email: String
    +login(): boolean
  }
  class Account {
    -balance: float
    +deposit(amount): void
  }
  User --> Account
  @enduml""",
    DiagramKind.SEQUENCE: """SEQUENCE DIAGRAM REQUIREMENTS:
- MUST use participant or actor for all entities
- Use -> for synchronous messages, ->> for asynchronous
- Use --> for return messages
- Show time progression from top to bottom
- Use activate/deactivate for object lifelines if needed
- Example structure:
  @startuml
  participant User
  participant System
  participant Database
  User -> System: login(credentials)
  System -> Database: validate(user)
  Database --> System: result
  System --> User: success or failure
  @enduml""",
    DiagramKind.USECASE: """USE CASE DIAGRAM REQUIREMENTS:
- MUST use actor for all external entities
- Use (Use Case Name) syntax for all use cases
- Use --> for actor-to-usecase associations
- Use <<include>> and <<extend>> for use case relationships
- Keep the layout left to right: actors on the left and right, use cases in between
- Example structure:
  @startuml
  left to right direction
  actor User
  actor Admin
  (Login) as UC1
  (View Dashboard) as UC2
  (Manage Users) as UC3
  User --> UC1
  User --> UC2
  Admin --> UC3
  UC2 .> UC1 : <<include>>
  @enduml""",
    DiagramKind.ACTIVITY: """ACTIVITY DIAGRAM REQUIREMENTS:
- MUST use :activity name; syntax for all activities
- Use start and stop/end for begin and end points
- Use if (condition?) then (yes) else (no) endif for decisions
- Use fork and join for parallel processes
- Show clear workflow progression
- Example structure:
  @startuml
  start
  :Initialize System;
  if (User Authenticated?) then (yes)
    :Load Dashboard;
  else (no)
    :Show Login Form;
    :Validate Credentials;
  endif
  :Display Content;
  stop
  @enduml""",
    DiagramKind.STATE: """STATE DIAGRAM REQUIREMENTS:
- MUST use state "State Name" syntax for named states
- Use [*] for initial and final states
- Use --> for state transitions with trigger labels
- Include trigger events and conditions
- Example structure:
  @startuml
  [*] --> Idle
  Idle --> Active : start
  Active --> Processing : process
  Processing --> Active : complete
  Active --> Idle : stop
  Processing --> Error : failure
  Error --> Idle : reset
  Idle --> [*]
  @enduml""",
}

GENERAL_SYNTAX_REQUIREMENTS = """GENERAL SYNTAX REQUIREMENTS:
- Always start with @startuml and end with @enduml
- Use simple, clear names without special characters or apostrophes
- Put a space on both sides of every arrow (A --> B, not A-->B)
- Ensure all syntax is valid PlantUML
- Keep the diagram focused and readable
- NO themes, NO skinparam, NO advanced styling

DESIGN REQUIREMENTS:
- Create a clean, professional diagram
- Use clear, readable component/entity names
- Show meaningful relationships and flows
- Focus on structure and clarity"""

EDIT_REQUIREMENTS = """Instructions:
1. Carefully analyze the existing PlantUML code
2. Apply the requested changes while maintaining the diagram's integrity
3. Preserve existing elements unless specifically asked to remove them
4. Keep the same diagram type as the existing diagram
5. Provide a clear summary of the specific changes made
6. Ensure the modified PlantUML code is syntactically correct and renders without errors
7. Use basic PlantUML syntax only - NO !theme, NO skinparam, NO advanced styling
8. Keep names clear and simple and preserve the existing grouping and layout"""

DIAGRAM_TEMPLATES: dict[DiagramKind, str] = {
    DiagramKind.COMPONENT: """@startuml
package "System" {
  [Component A] as CompA
  [Component B] as CompB
  [Component C] as CompC

  CompA --> CompB : uses
  CompB --> CompC : depends on
}
@enduml""",
    DiagramKind.DEPLOYMENT: """@startuml
node "Web Server" {
  [Web Application] as webapp
}

node "Database Server" {
  database "MySQL" as db
}

node "Cache Server" {
  [Redis] as cache
}

webapp --> db : queries
webapp --> cache : stores and retrieves
@enduml""",
    DiagramKind.CLASS: """@startuml
class User {
  -id: string
  -name: string
  -email: string
  +getName(): string
  +setEmail(email: string): void
}

class Order {
  -id: string
  -userId: string
  +addItem(item: Item): void
  +calculateTotal(): number
}

User --> Order : places
@enduml""",
    DiagramKind.SEQUENCE: """@startuml
actor User
participant "Web App" as WA
participant "API" as API
participant "Database" as DB

User -> WA: Request
WA -> API: API Call
API -> DB: Query
DB --> API: Result
API --> WA: Response
WA --> User: Display
@enduml""",
    DiagramKind.USECASE: """@startuml
left to right direction
actor User
actor Admin

rectangle System {
  User --> (Login)
  User --> (View Data)
  User --> (Edit Profile)

  Admin --> (Manage Users)
  Admin --> (System Configuration)
  Admin --> (View Reports)
}
@enduml""",
    DiagramKind.ACTIVITY: """@startuml
start
:User Login;
if (Valid Credentials?) then (yes)
  :Load Dashboard;
  :Display User Data;
else (no)
  :Show Error Message;
  :Return to Login;
endif
stop
@enduml""",
    DiagramKind.STATE: """@startuml
[*] --> Idle
Idle --> Processing : start
Processing --> Completed : success
Processing --> Failed : error
Completed --> [*]
Failed --> Idle : retry
@enduml""",
}
