import graphene

from shop.schema import Mutation as ShopMutation
from shop.schema import Query as ShopQuery


class Query(ShopQuery, graphene.ObjectType):
    hello = graphene.String(default_value="Hello, GraphQL!")


class Mutation(ShopMutation, graphene.ObjectType):
    pass


schema = graphene.Schema(query=Query, mutation=Mutation)
